import uuid
from time import perf_counter

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from waghl.core.logging import get_logger, reset_request_id, set_request_id

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_INBOUND_ID_LENGTH = 128

logger = get_logger("api.request")


def _inbound_request_id(request: Request) -> str | None:
    value = request.headers.get(REQUEST_ID_HEADER, "").strip()
    if not value or len(value) > _MAX_INBOUND_ID_LENGTH or not value.isprintable():
        return None
    return value


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID, log its start and end, echo the ID back."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = _inbound_request_id(request) or uuid.uuid4().hex
        request.state.request_id = request_id
        context_token = set_request_id(request_id)
        started = perf_counter()
        response: Response | None = None
        request_extra = {"component": "api", "method": request.method, "path": request.url.path}

        logger.info("request.start", extra=request_extra)
        try:
            response = await call_next(request)
            return response
        except Exception:
            logger.exception("request.error", extra=request_extra)
            raise
        finally:
            logger.info(
                "request.end",
                extra={
                    **request_extra,
                    "status_code": response.status_code if response is not None else 500,
                    "duration_ms": int((perf_counter() - started) * 1000),
                },
            )
            if response is not None:
                response.headers[REQUEST_ID_HEADER] = request_id
            reset_request_id(context_token)
