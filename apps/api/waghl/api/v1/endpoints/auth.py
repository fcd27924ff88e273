from fastapi import APIRouter, Depends, HTTPException, Response, status

from waghl.api.v1.schemas.customer import CustomerOut, LoginIn
from waghl.core.logging import get_logger
from waghl.core.passwords import verify_password
from waghl.core.settings import get_settings
from waghl.core.supabase_rest import CustomerStore, get_customer_store
from waghl.core.tokens import VerifiedToken, issue_token
from waghl.entitlements.evaluator import Clock
from waghl.entitlements.guard import CUSTOMER_COOKIE, get_clock, verify_customer_auth
from waghl.entitlements.plans import SubscriptionStatus, parse_status

router = APIRouter(prefix="/auth")
logger = get_logger("api.auth")
customer_auth_dependency = Depends(verify_customer_auth)
customer_store_dependency = Depends(get_customer_store)
clock_dependency = Depends(get_clock)

LOGIN_ALLOWED_STATUSES = frozenset(
    {SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE, SubscriptionStatus.EXPIRED}
)


def _invalid_credentials() -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")


def _set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        CUSTOMER_COOKIE,
        token,
        max_age=settings.JWT_EXPIRES_SECONDS,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )


@router.post("/login")
async def login(
    payload: LoginIn,
    response: Response,
    store: CustomerStore = customer_store_dependency,
    clock: Clock = clock_dependency,
) -> dict[str, object]:
    row = await store.select_customer_credentials(payload.email)
    if row is None:
        raise _invalid_credentials()

    password_hash = row.get("password_hash")
    if not verify_password(payload.password, password_hash if isinstance(password_hash, str) else None):
        logger.info("auth.login_failed", extra={"component": "auth", "customer_id": row.get("id")})
        raise _invalid_credentials()

    raw_status = row.get("status")
    if parse_status(raw_status if isinstance(raw_status, str) else None) not in LOGIN_ALLOWED_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Account is {raw_status or 'inactive'}",
        )

    customer_id = str(row.get("id"))
    email = str(row.get("email") or payload.email)
    token = issue_token(customer_id, token_type="customer", email=email)
    await store.touch_last_login(customer_id, clock())
    _set_session_cookie(response, token)

    logger.info("auth.login", extra={"component": "auth", "customer_id": customer_id})
    row.pop("password_hash", None)
    return {
        "success": True,
        "message": "Login successful",
        "token": token,
        "customer": CustomerOut.model_validate(row).model_dump(mode="json"),
    }


@router.post("/refresh")
def refresh(response: Response, auth: VerifiedToken = customer_auth_dependency) -> dict[str, object]:
    token = issue_token(auth.subject, token_type="customer", email=auth.email)
    _set_session_cookie(response, token)
    return {"success": True, "message": "Token refreshed successfully", "token": token}


@router.post("/logout")
def logout(response: Response) -> dict[str, object]:
    response.delete_cookie(CUSTOMER_COOKIE)
    return {"success": True, "message": "Logged out"}


@router.get("/me")
def me(auth: VerifiedToken = customer_auth_dependency) -> dict[str, object]:
    safe_fields = ("sub", "email", "type", "iss", "exp")
    return {key: auth.claims[key] for key in safe_fields if key in auth.claims}
