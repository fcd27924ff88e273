from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from waghl.api.v1.router import router as v1_router
from waghl.core.logging import configure_logging
from waghl.core.settings import get_settings
from waghl.entitlements.errors import EntitlementError
from waghl.middleware.rate_limit import RateLimitMiddleware
from waghl.middleware.request_id import RequestIDMiddleware

configure_logging()
settings = get_settings()

app = FastAPI(title="WhatsApp GHL Platform API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(
    RateLimitMiddleware,
    max_requests_per_minute=settings.API_RATE_LIMIT_PER_MINUTE,
    enabled=settings.API_RATE_LIMIT_ENABLED,
)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(EntitlementError)
async def entitlement_error_handler(_request: Request, exc: EntitlementError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(v1_router, prefix="/api/v1")


@app.get("/healthz")
def root_healthz() -> dict[str, str]:
    return {"status": "ok"}
