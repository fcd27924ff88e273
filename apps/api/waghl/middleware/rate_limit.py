import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from waghl.auth.admin import ADMIN_COOKIE
from waghl.core.logging import get_logger
from waghl.core.tokens import InvalidSessionTokenError, TokenType, extract_bearer_token, verify_token
from waghl.entitlements.guard import CUSTOMER_COOKIE

logger = get_logger("api.rate_limit")

MAX_TRACKED_CLIENTS = 10_000


@dataclass
class _Bucket:
    tokens: float
    last_refill: float


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory token bucket per session subject (or client IP) on /api routes.

    Only a token with a valid signature selects a per-subject bucket; anything
    else is limited by client IP.
    """

    def __init__(
        self,
        app,
        max_requests_per_minute: int = 60,
        enabled: bool = True,
        monotonic: Callable[[], float] = time.monotonic,
        max_tracked_clients: int = MAX_TRACKED_CLIENTS,
    ) -> None:
        super().__init__(app)
        self.enabled = enabled
        self.capacity = float(max(1, max_requests_per_minute))
        self.refill_rate = self.capacity / 60.0
        self.max_tracked_clients = max(1, max_tracked_clients)
        self._monotonic = monotonic
        self._buckets: dict[str, _Bucket] = {}
        self._lock = Lock()

    @staticmethod
    def _client_ip(request: Request) -> str:
        forwarded_for = request.headers.get("x-forwarded-for", "")
        first_ip = forwarded_for.split(",")[0].strip()
        if first_ip:
            return first_ip
        return request.client.host if request.client else "unknown"

    @staticmethod
    def _token_subject(request: Request) -> str | None:
        candidates: list[tuple[str | None, tuple[TokenType, ...]]] = [
            (extract_bearer_token(request.headers.get("authorization")), ("customer", "admin")),
            (request.cookies.get(CUSTOMER_COOKIE), ("customer",)),
            (request.cookies.get(ADMIN_COOKIE), ("admin",)),
        ]
        for token, token_types in candidates:
            if not token:
                continue
            for token_type in token_types:
                try:
                    verified = verify_token(token, token_type=token_type)
                except InvalidSessionTokenError:
                    continue
                return f"{token_type}:{verified.subject}"
        return None

    def client_key(self, request: Request) -> str:
        return self._token_subject(request) or f"ip:{self._client_ip(request)}"

    def _prune(self, now: float) -> None:
        # Buckets that have refilled completely carry no state worth keeping.
        idle = [
            key
            for key, bucket in self._buckets.items()
            if bucket.tokens + (now - bucket.last_refill) * self.refill_rate >= self.capacity
        ]
        for key in idle:
            del self._buckets[key]

    @property
    def tracked_clients(self) -> int:
        return len(self._buckets)

    def allow(self, key: str) -> bool:
        now = self._monotonic()
        with self._lock:
            if key not in self._buckets and len(self._buckets) >= self.max_tracked_clients:
                self._prune(now)
            bucket = self._buckets.setdefault(key, _Bucket(tokens=self.capacity, last_refill=now))
            elapsed = max(0.0, now - bucket.last_refill)
            bucket.tokens = min(self.capacity, bucket.tokens + elapsed * self.refill_rate)
            bucket.last_refill = now
            if bucket.tokens < 1:
                return False
            bucket.tokens -= 1
            return True

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        if not self.enabled or not request.url.path.startswith("/api"):
            return await call_next(request)

        key = self.client_key(request)
        if not self.allow(key):
            logger.warning("rate_limit.exceeded", extra={"component": "api", "path": request.url.path})
            return JSONResponse(
                status_code=429,
                content={"success": False, "message": "Too many requests. Please slow down.", "code": "RATE_LIMITED"},
            )
        return await call_next(request)
