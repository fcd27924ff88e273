from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

import jwt
from jwt.exceptions import InvalidTokenError

from waghl.core.settings import Settings, get_settings

TokenType = Literal["customer", "admin"]
_ALGORITHM = "HS256"


class InvalidSessionTokenError(ValueError):
    pass


@dataclass(frozen=True)
class VerifiedToken:
    token: str
    subject: str
    email: str | None
    token_type: TokenType
    claims: dict[str, Any]

    @property
    def role(self) -> str | None:
        value = self.claims.get("role")
        return value if isinstance(value, str) else None


def _secret_for(token_type: TokenType, settings: Settings) -> str:
    if token_type == "admin":
        return settings.ADMIN_JWT_SECRET
    return settings.CUSTOMER_JWT_SECRET


def issue_token(
    subject: str,
    *,
    token_type: TokenType,
    email: str | None = None,
    extra_claims: dict[str, Any] | None = None,
    expires_in: timedelta | None = None,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> str:
    settings = settings or get_settings()
    issued_at = now or datetime.now(UTC)
    if expires_in is None:
        expires_in = timedelta(seconds=settings.JWT_EXPIRES_SECONDS)

    payload: dict[str, Any] = dict(extra_claims or {})
    payload.update(
        {
            "sub": subject,
            "type": token_type,
            "iss": settings.JWT_ISSUER,
            "aud": token_type,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + expires_in).timestamp()),
        }
    )
    if email:
        payload["email"] = email
    return jwt.encode(payload, _secret_for(token_type, settings), algorithm=_ALGORITHM)


def verify_token(
    token: str,
    *,
    token_type: TokenType,
    settings: Settings | None = None,
) -> VerifiedToken:
    settings = settings or get_settings()
    try:
        claims = jwt.decode(
            token,
            _secret_for(token_type, settings),
            algorithms=[_ALGORITHM],
            issuer=settings.JWT_ISSUER,
            audience=token_type,
            options={"require": ["sub", "exp", "type"]},
        )
    except InvalidTokenError as exc:
        raise InvalidSessionTokenError("Invalid or expired token") from exc

    if not isinstance(claims, dict) or claims.get("type") != token_type:
        raise InvalidSessionTokenError("Invalid token type")

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        raise InvalidSessionTokenError("Invalid token subject")

    email = claims.get("email")
    return VerifiedToken(
        token=token,
        subject=subject.strip(),
        email=email if isinstance(email, str) else None,
        token_type=token_type,
        claims=claims,
    )


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
