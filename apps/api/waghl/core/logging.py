from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Any

from waghl.core.settings import get_settings

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
_configured = False

# Attributes every LogRecord carries; anything else came in through `extra`.
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}
_SENSITIVE_KEY_FRAGMENTS = ("secret", "token", "password", "cookie", "authorization", "api_key", "apikey")
_EMAIL_KEYS = {"email", "customer_email", "admin_email"}


def set_request_id(request_id: str | None) -> Token[str | None]:
    return _request_id_var.set(request_id)


def reset_request_id(token: Token[str | None]) -> None:
    _request_id_var.reset(token)


def get_request_id() -> str | None:
    return _request_id_var.get()


def mask_email(value: str) -> str:
    local, sep, domain = value.strip().partition("@")
    if not sep:
        return "[redacted]"
    head = local[:1] or "*"
    return f"{head}***@{domain.lower()}"


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, str | int | float | bool):
        return value
    if isinstance(value, datetime):
        return value.isoformat().replace("+00:00", "Z")
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set):
        return [_json_safe(item) for item in value]
    return str(value)


def _redact(key: str, value: Any) -> Any:
    lowered = key.lower()
    if any(fragment in lowered for fragment in _SENSITIVE_KEY_FRAGMENTS):
        return "[redacted]"
    if lowered in _EMAIL_KEYS and isinstance(value, str):
        return mask_email(value)
    return _json_safe(value)


class JsonLogFormatter(logging.Formatter):
    def __init__(self, service: str = "waghl-api") -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service,
            "event": record.getMessage(),
            "component": getattr(record, "component", record.name),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_") or key in payload:
                continue
            payload[key] = _redact(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            payload["error_type"] = record.exc_info[0].__name__
            payload["error"] = str(record.exc_info[1])[:500]

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)


def configure_logging() -> None:
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.strip().upper() or "INFO", logging.INFO)
    service = "waghl-worker" if settings.WAGHL_MODE.strip().lower() == "worker" else "waghl-api"

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter(service=service))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
