from fastapi import Depends, Header, Request

from waghl.core.logging import get_logger
from waghl.core.settings import get_settings
from waghl.core.supabase_rest import CustomerStore, get_customer_store
from waghl.core.tokens import InvalidSessionTokenError, VerifiedToken, extract_bearer_token, verify_token
from waghl.entitlements.errors import AuthenticationRequired, EntitlementDenied, ErrorCode
from waghl.entitlements.evaluator import Clock, EntitlementEvaluator, Verdict, utc_now
from waghl.entitlements.plans import Plan
from waghl.entitlements.quota import check_subaccount_quota
from waghl.entitlements.snapshot import EntitlementSnapshot

CUSTOMER_COOKIE = "customer_token"

logger = get_logger("entitlements.guard")


def get_clock() -> Clock:
    return utc_now


def get_evaluator(clock: Clock = Depends(get_clock)) -> EntitlementEvaluator:
    settings = get_settings()
    return EntitlementEvaluator(
        website_url=settings.WEBSITE_URL,
        support_email=settings.SUPPORT_EMAIL,
        clock=clock,
    )


def verify_customer_auth(
    request: Request,
    authorization: str | None = Header(default=None),
) -> VerifiedToken:
    token = extract_bearer_token(authorization) or request.cookies.get(CUSTOMER_COOKIE)
    if not token:
        raise AuthenticationRequired()
    try:
        return verify_token(token, token_type="customer")
    except InvalidSessionTokenError:
        raise AuthenticationRequired("Invalid or expired token") from None


customer_auth_dependency = Depends(verify_customer_auth)
customer_store_dependency = Depends(get_customer_store)
evaluator_dependency = Depends(get_evaluator)


async def get_entitlement_snapshot(
    auth: VerifiedToken = customer_auth_dependency,
    store: CustomerStore = customer_store_dependency,
) -> EntitlementSnapshot:
    row = await store.select_customer(auth.subject)
    if row is None:
        raise AuthenticationRequired("Customer account not found")
    return EntitlementSnapshot.from_row(row)


snapshot_dependency = Depends(get_entitlement_snapshot)


def enforce(verdict: Verdict, snapshot: EntitlementSnapshot, *, gate: str) -> None:
    if verdict.allowed:
        return

    log_extra = {
        "component": "entitlements",
        "gate": gate,
        "customer_id": snapshot.customer_id,
        "code": verdict.code.value if verdict.code else None,
    }
    if verdict.code is ErrorCode.INVALID_PLAN:
        # Not a normal user state: the stored plan value is corrupt or unknown.
        logger.warning("entitlements.invalid_plan", extra={**log_extra, "raw_plan": snapshot.raw_plan})
    else:
        logger.info("entitlements.denied", extra=log_extra)
    raise EntitlementDenied(verdict)


async def require_active_subscription(
    snapshot: EntitlementSnapshot = snapshot_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
) -> EntitlementSnapshot:
    enforce(evaluator.check_subscription(snapshot), snapshot, gate="subscription")
    return snapshot


async def require_active_trial(
    snapshot: EntitlementSnapshot = snapshot_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
) -> EntitlementSnapshot:
    enforce(evaluator.require_active_trial(snapshot), snapshot, gate="active_trial")
    return snapshot


async def require_paid_subscription(
    snapshot: EntitlementSnapshot = snapshot_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
) -> EntitlementSnapshot:
    enforce(evaluator.require_paid_subscription(snapshot), snapshot, gate="paid_subscription")
    return snapshot


def require_plan(required: Plan):
    async def dependency(
        snapshot: EntitlementSnapshot = snapshot_dependency,
        evaluator: EntitlementEvaluator = evaluator_dependency,
    ) -> EntitlementSnapshot:
        enforce(evaluator.require_minimum_plan(snapshot, required), snapshot, gate=f"plan:{required.value}")
        return snapshot

    return Depends(dependency)


def enforce_subaccount_quota(snapshot: EntitlementSnapshot, delta: int = 1) -> None:
    enforce(check_subaccount_quota(snapshot, delta), snapshot, gate="subaccount_quota")
