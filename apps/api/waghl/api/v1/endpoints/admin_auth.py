from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Response, status

from waghl.api.v1.schemas.admin import AdminLoginIn
from waghl.auth.admin import ADMIN_COOKIE, AdminContext, admin_dependency, normalize_admin_role
from waghl.core.logging import get_logger
from waghl.core.passwords import verify_password
from waghl.core.settings import get_settings
from waghl.core.supabase_rest import CustomerStore, get_customer_store
from waghl.core.tokens import issue_token

router = APIRouter(prefix="/admin/auth")
logger = get_logger("api.admin_auth")
customer_store_dependency = Depends(get_customer_store)

ADMIN_SESSION_TTL = timedelta(days=7)


@router.post("/login")
async def admin_login(
    payload: AdminLoginIn,
    response: Response,
    store: CustomerStore = customer_store_dependency,
) -> dict[str, object]:
    row = await store.select_admin_credentials(payload.email)
    password_hash = row.get("password") if row else None
    if row is None or not verify_password(payload.password, password_hash if isinstance(password_hash, str) else None):
        logger.info("admin.login_failed", extra={"component": "auth"})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    admin = AdminContext(
        admin_id=str(row.get("id")),
        email=str(row.get("email") or payload.email),
        name=row.get("name") if isinstance(row.get("name"), str) else None,
        role=normalize_admin_role(row.get("role")),
    )
    token = issue_token(
        admin.admin_id,
        token_type="admin",
        email=admin.email,
        extra_claims={"isAdmin": True, "role": admin.role, "name": admin.name},
        expires_in=ADMIN_SESSION_TTL,
    )
    response.set_cookie(
        ADMIN_COOKIE,
        token,
        max_age=int(ADMIN_SESSION_TTL.total_seconds()),
        httponly=True,
        secure=get_settings().COOKIE_SECURE,
        samesite="lax",
    )

    logger.info("admin.login", extra={"component": "auth", "admin_id": admin.admin_id})
    return {"success": True, "user": admin.as_dict()}


@router.get("/check")
def admin_check(admin: AdminContext = admin_dependency) -> dict[str, object]:
    return {"authenticated": True, "user": admin.as_dict()}


@router.post("/logout")
def admin_logout(response: Response) -> dict[str, object]:
    response.delete_cookie(ADMIN_COOKIE)
    return {"success": True}
