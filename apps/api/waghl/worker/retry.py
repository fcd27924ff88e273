from __future__ import annotations

import re

from fastapi import HTTPException

_MAX_ERROR_LENGTH = 500
_SENSITIVE_PATTERNS = (
    re.compile(r"bearer\s+[a-z0-9\-_\.]+", re.IGNORECASE),
    re.compile(r"(api[_-]?key|apikey|token|secret|password)\s*[:=]\s*[^\s,;]+", re.IGNORECASE),
    re.compile(r"eyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+"),
)


def sanitize_error(exc: Exception, *, default_message: str) -> str:
    """Short, credential-free description of a worker failure for logs and rows."""
    if isinstance(exc, HTTPException) and isinstance(exc.detail, str) and exc.detail.strip():
        message = exc.detail.strip()
    else:
        message = str(exc).strip() or default_message

    for pattern in _SENSITIVE_PATTERNS:
        message = pattern.sub("[redacted]", message)
    return message[:_MAX_ERROR_LENGTH]
