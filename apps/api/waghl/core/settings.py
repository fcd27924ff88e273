from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    WAGHL_ENV: str = "development"
    WAGHL_MODE: str = "api"
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    API_CORS_ORIGINS: str = "http://localhost:3000,http://localhost:3001"
    API_RATE_LIMIT_ENABLED: bool = True
    API_RATE_LIMIT_PER_MINUTE: int = 60
    WEBSITE_URL: str = "http://localhost:3000"
    SUPPORT_EMAIL: str = "support@example.com"
    CUSTOMER_JWT_SECRET: str
    ADMIN_JWT_SECRET: str
    JWT_ISSUER: str = "whatsapp-ghl-saas"
    JWT_EXPIRES_SECONDS: int = 7 * 24 * 3600
    COOKIE_SECURE: bool = False
    EMAIL_FROM: str | None = None
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    SUPABASE_URL: str
    SUPABASE_SERVICE_ROLE_KEY: str
    SUPABASE_TIMEOUT_SECONDS: float = 10.0
    DEFAULT_TRIAL_DAYS: int = 7
    TRIAL_REMINDER_DAYS: str = "3,1"
    TRIAL_CHECK_INTERVAL_SECONDS: int = 3600
    WORKER_POLL_INTERVAL_SECONDS: int = 60

    @model_validator(mode="after")
    def validate_required_values(self) -> "Settings":
        if not self.SUPABASE_URL.strip():
            raise ValueError("SUPABASE_URL must be configured")
        if not self.SUPABASE_SERVICE_ROLE_KEY.strip():
            raise ValueError("SUPABASE_SERVICE_ROLE_KEY must be configured")
        if not self.CUSTOMER_JWT_SECRET.strip():
            raise ValueError("CUSTOMER_JWT_SECRET must be configured")
        if not self.ADMIN_JWT_SECRET.strip():
            raise ValueError("ADMIN_JWT_SECRET must be configured")
        if self.DEFAULT_TRIAL_DAYS < 1:
            raise ValueError("DEFAULT_TRIAL_DAYS must be at least 1")
        if self.WAGHL_ENV.strip().lower() == "production":
            if not (self.EMAIL_FROM or "").strip():
                raise ValueError("EMAIL_FROM must be configured in production")
            self.COOKIE_SECURE = True
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.API_CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def login_url(self) -> str:
        return f"{self.WEBSITE_URL.rstrip('/')}/login"

    @property
    def upgrade_url(self) -> str:
        return f"{self.WEBSITE_URL.rstrip('/')}/upgrade"

    @property
    def trial_reminder_days(self) -> list[int]:
        days: set[int] = set()
        for raw in self.TRIAL_REMINDER_DAYS.split(","):
            try:
                value = int(raw.strip())
            except ValueError:
                continue
            if value >= 1:
                days.add(value)
        return sorted(days, reverse=True)


@lru_cache
def get_settings() -> Settings:
    return Settings()
