from collections import Counter

from fastapi import APIRouter, Depends, HTTPException, Query, status

from waghl.api.v1.schemas.customer import (
    CustomerOut,
    EntitlementSummaryOut,
    NotificationOut,
    ProfileUpdateIn,
    UpgradeRequestIn,
    is_valid_phone,
)
from waghl.core.logging import get_logger
from waghl.core.supabase_rest import CustomerStore, get_customer_store
from waghl.core.tokens import VerifiedToken
from waghl.entitlements.errors import AuthenticationRequired
from waghl.entitlements.evaluator import EntitlementEvaluator
from waghl.entitlements.guard import (
    get_entitlement_snapshot,
    get_evaluator,
    require_active_trial,
    require_paid_subscription,
    require_plan,
    verify_customer_auth,
)
from waghl.entitlements.plans import Plan, parse_plan
from waghl.entitlements.snapshot import EntitlementSnapshot

router = APIRouter(prefix="/customer")
logger = get_logger("api.customer")
customer_auth_dependency = Depends(verify_customer_auth)
customer_store_dependency = Depends(get_customer_store)
snapshot_dependency = Depends(get_entitlement_snapshot)
evaluator_dependency = Depends(get_evaluator)
active_trial_dependency = Depends(require_active_trial)
paid_subscription_dependency = Depends(require_paid_subscription)
pro_plan_dependency = require_plan(Plan.PRO)


def _summary(evaluator: EntitlementEvaluator, snapshot: EntitlementSnapshot) -> dict[str, object]:
    summary = EntitlementSummaryOut.model_validate(evaluator.describe(snapshot).as_dict())
    return summary.model_dump(mode="json", by_alias=True)


@router.get("/profile")
async def profile(
    auth: VerifiedToken = customer_auth_dependency,
    store: CustomerStore = customer_store_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
) -> dict[str, object]:
    row = await store.select_customer(auth.subject)
    if row is None:
        raise AuthenticationRequired("Customer account not found")
    snapshot = EntitlementSnapshot.from_row(row)
    return {
        "success": True,
        "customer": CustomerOut.model_validate(row).model_dump(mode="json"),
        "subscription": _summary(evaluator, snapshot),
    }


@router.put("/profile")
async def update_profile(
    payload: ProfileUpdateIn,
    auth: VerifiedToken = customer_auth_dependency,
    store: CustomerStore = customer_store_dependency,
) -> dict[str, object]:
    business_name = (payload.business_name or "").strip()
    phone = (payload.phone or "").strip()
    if not business_name and not phone:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one field (business_name or phone) is required",
        )

    updates: dict[str, str] = {}
    if business_name:
        updates["business_name"] = business_name
    if phone:
        if not is_valid_phone(phone):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid phone format. Use international format (+1234567890)",
            )
        if await store.select_customer_by_contact(phone=phone, exclude_customer_id=auth.subject) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Phone number already in use")
        updates["phone"] = phone

    row = await store.update_customer(auth.subject, updates)
    if row is None:
        raise AuthenticationRequired("Customer account not found")

    logger.info(
        "customer.profile_updated",
        extra={"component": "customer", "customer_id": auth.subject, "fields": sorted(updates)},
    )
    return {
        "success": True,
        "message": "Profile updated successfully",
        "customer": CustomerOut.model_validate(row).model_dump(mode="json"),
    }


@router.get("/subscription")
def subscription(
    snapshot: EntitlementSnapshot = snapshot_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
) -> dict[str, object]:
    verdict = evaluator.check_subscription(snapshot)
    return {
        "success": True,
        "subscription": _summary(evaluator, snapshot),
        "access": verdict.to_payload(),
        "subaccounts": {
            "current": snapshot.total_subaccounts,
            "max": snapshot.max_subaccounts,
        },
    }


@router.get("/notifications")
async def notifications(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    auth: VerifiedToken = customer_auth_dependency,
    store: CustomerStore = customer_store_dependency,
) -> dict[str, object]:
    rows = await store.list_notifications(auth.subject, limit=limit, offset=offset)
    items = [NotificationOut.model_validate(row).model_dump(mode="json") for row in rows]
    return {"success": True, "notifications": items, "count": len(items)}


@router.post("/upgrade-request")
async def upgrade_request(
    payload: UpgradeRequestIn,
    snapshot: EntitlementSnapshot = snapshot_dependency,
    store: CustomerStore = customer_store_dependency,
) -> dict[str, object]:
    requested_plan = parse_plan(payload.requested_plan)
    await store.insert_notification(snapshot.customer_id, "upgrade_request", channel="email")
    logger.info(
        "customer.upgrade_requested",
        extra={
            "component": "customer",
            "customer_id": snapshot.customer_id,
            "current_plan": snapshot.plan_label,
            "requested_plan": requested_plan.value,
        },
    )
    return {
        "success": True,
        "message": "Upgrade request submitted successfully. Admin will contact you soon.",
        "requested_plan": requested_plan.value,
    }


@router.get("/analytics")
async def analytics(
    snapshot: EntitlementSnapshot = pro_plan_dependency,
    store: CustomerStore = customer_store_dependency,
) -> dict[str, object]:
    rows = await store.list_subaccounts(snapshot.customer_id)
    by_status = Counter(str(row.get("status") or "unknown") for row in rows)
    return {
        "success": True,
        "subaccounts_total": len(rows),
        "subaccounts_by_status": dict(sorted(by_status.items())),
        "quota_remaining": max(0, snapshot.max_subaccounts - snapshot.total_subaccounts),
    }


@router.get("/trial")
def trial(
    snapshot: EntitlementSnapshot = active_trial_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
) -> dict[str, object]:
    summary = _summary(evaluator, snapshot)
    return {
        "success": True,
        "trial": {
            "endsAt": summary["expiresAt"],
            "daysRemaining": summary["daysRemaining"],
            "upgradeUrl": evaluator.upgrade_url,
        },
    }


@router.get("/billing")
def billing(
    snapshot: EntitlementSnapshot = paid_subscription_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
) -> dict[str, object]:
    return {
        "success": True,
        "plan": snapshot.plan_label,
        "renewUrl": evaluator.renew_url,
        "subscription": _summary(evaluator, snapshot),
    }
