from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from fastapi import Depends, Header, HTTPException, Request, status

from waghl.core.logging import get_logger
from waghl.core.supabase_rest import CustomerStore, get_customer_store
from waghl.core.tokens import InvalidSessionTokenError, extract_bearer_token, verify_token

ADMIN_COOKIE = "admin_token"

AdminRole = Literal["support", "admin", "superadmin"]

admin_role_rank: dict[str, int] = {
    "support": 1,
    "admin": 2,
    "superadmin": 3,
}

logger = get_logger("auth.admin")
customer_store_dependency = Depends(get_customer_store)


@dataclass(frozen=True)
class AdminContext:
    admin_id: str
    email: str
    name: str | None
    role: AdminRole

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.admin_id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_admin": True,
        }


def _unauthorized(detail: str = "Authentication required") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def normalize_admin_role(value: object) -> AdminRole:
    normalized = value.strip().lower() if isinstance(value, str) else ""
    if normalized not in admin_role_rank:
        return "support"
    return normalized  # type: ignore[return-value]


async def require_admin(
    request: Request,
    authorization: str | None = Header(default=None),
    store: CustomerStore = customer_store_dependency,
) -> AdminContext:
    token = request.cookies.get(ADMIN_COOKIE) or extract_bearer_token(authorization)
    if not token:
        raise _unauthorized()

    try:
        verified = verify_token(token, token_type="admin")
    except InvalidSessionTokenError:
        raise _unauthorized("Invalid or expired token") from None

    if verified.claims.get("isAdmin") is not True:
        raise _unauthorized("Invalid or expired token")

    # The token alone is not enough: deactivated admins lose access immediately.
    row = await store.select_admin_user(verified.subject)
    if row is None:
        logger.warning(
            "admin.access_revoked",
            extra={"component": "auth", "admin_id": verified.subject},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access revoked")

    email = row.get("email")
    name = row.get("name")
    return AdminContext(
        admin_id=str(row.get("id") or verified.subject),
        email=email if isinstance(email, str) else (verified.email or ""),
        name=name if isinstance(name, str) else None,
        role=normalize_admin_role(row.get("role")),
    )


admin_dependency = Depends(require_admin)


def require_admin_role(min_role: AdminRole):
    async def dependency(admin: AdminContext = admin_dependency) -> AdminContext:
        if admin_role_rank[admin.role] < admin_role_rank[min_role]:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return admin

    return Depends(dependency)
