from collections import Counter
from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool

from waghl.api.v1.schemas.admin import (
    AdminCustomerDetailOut,
    AdminCustomerOut,
    CustomerCreateIn,
    CustomerUpdateIn,
    SubaccountGrantIn,
    SubaccountRemoveIn,
    TrialExtensionIn,
)
from waghl.api.v1.schemas.customer import SubaccountOut, is_valid_phone
from waghl.auth.admin import AdminContext, require_admin_role
from waghl.core.logging import get_logger
from waghl.core.passwords import generate_password, hash_password
from waghl.core.settings import Settings, get_settings
from waghl.core.supabase_rest import CustomerStore, get_customer_store
from waghl.entitlements.evaluator import EntitlementEvaluator, isoformat_utc
from waghl.entitlements.guard import get_evaluator
from waghl.entitlements.plans import Plan, SubscriptionStatus, parse_plan, parse_status
from waghl.entitlements.quota import validate_quota_increment
from waghl.entitlements.snapshot import EntitlementSnapshot, parse_utc_timestamp
from waghl.notifications.emailer import EmailNotConfiguredError, EmailSendError, send_email
from waghl.notifications.templates import welcome_email
from waghl.worker.retry import sanitize_error

router = APIRouter(prefix="/admin/customers")
logger = get_logger("api.admin_customers")
customer_store_dependency = Depends(get_customer_store)
evaluator_dependency = Depends(get_evaluator)
settings_dependency = Depends(get_settings)
support_dependency = require_admin_role("support")
admin_write_dependency = require_admin_role("admin")


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")


def _customer_out(
    evaluator: EntitlementEvaluator,
    row: dict[str, Any],
    current_subaccounts: int,
) -> dict[str, object]:
    snapshot = EntitlementSnapshot.from_row(row)
    customer = AdminCustomerOut.model_validate(
        {
            **row,
            "current_subaccounts": current_subaccounts,
            "entitlement": evaluator.describe(snapshot).as_dict(),
        }
    )
    return customer.model_dump(mode="json", by_alias=True)


async def _load_customer(store: CustomerStore, customer_id: str) -> dict[str, Any]:
    row = await store.select_customer(customer_id)
    if row is None:
        raise _not_found()
    return row


@router.get("")
async def list_customers(
    _admin: AdminContext = support_dependency,
    store: CustomerStore = customer_store_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
) -> dict[str, object]:
    rows = await store.list_customers()
    ids = [str(row["id"]) for row in rows if row.get("id")]
    linked = Counter(str(item.get("customer_id")) for item in await store.list_subaccounts_for_customers(ids))
    return {
        "success": True,
        "customers": [_customer_out(evaluator, row, linked.get(str(row.get("id")), 0)) for row in rows],
    }


async def _send_welcome_email(row: dict[str, Any], password: str, settings: Settings) -> bool:
    trial_ends_at = parse_utc_timestamp(row.get("trial_ends_at"))
    message = welcome_email(
        business_name=row.get("business_name"),
        email=str(row.get("email")),
        password=password,
        login_url=settings.login_url,
        trial_ends_at=trial_ends_at,
    )
    try:
        await run_in_threadpool(
            send_email,
            to=str(row.get("email")),
            subject=message["subject"],
            html=message["html"],
            text=message["text"],
            customer_id=str(row.get("id")),
            settings=settings,
        )
    except (EmailNotConfiguredError, EmailSendError) as exc:
        logger.warning(
            "admin.welcome_email_failed",
            extra={
                "component": "admin",
                "customer_id": row.get("id"),
                "error": sanitize_error(exc, default_message="Welcome e-mail failed."),
            },
        )
        return False
    return True


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: CustomerCreateIn,
    admin: AdminContext = admin_write_dependency,
    store: CustomerStore = customer_store_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
    settings: Settings = settings_dependency,
) -> dict[str, object]:
    email = payload.email.strip().lower()
    phone = payload.phone.strip()
    business_name = payload.business_name.strip()
    if not email or not phone or not business_name:
        raise _bad_request("Email, phone, and business name are required")
    if not is_valid_phone(phone):
        raise _bad_request("Invalid phone format. Use international format (+1234567890)")
    plan = parse_plan(payload.plan)
    if plan in (Plan.UNRECOGNIZED, Plan.ADMIN):
        raise _bad_request(f"Unrecognized plan: {payload.plan}")

    if await store.select_customer_by_contact(email=email, phone=phone) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email or phone number already registered")

    password = generate_password()
    trial_ends_at = None
    if plan is Plan.TRIAL:
        trial_ends_at = evaluator.now() + timedelta(days=settings.DEFAULT_TRIAL_DAYS)
    row = await store.insert_customer(
        {
            "email": email,
            "phone": phone,
            "business_name": business_name,
            "password_hash": hash_password(password),
            "plan": plan.value,
            "status": SubscriptionStatus.TRIAL.value if plan is Plan.TRIAL else SubscriptionStatus.ACTIVE.value,
            "trial_ends_at": isoformat_utc(trial_ends_at) if trial_ends_at else None,
        }
    )

    welcome_sent = await _send_welcome_email(row, password, settings)
    logger.info(
        "admin.customer_created",
        extra={
            "component": "admin",
            "admin_id": admin.admin_id,
            "customer_id": row.get("id"),
            "plan": plan.value,
        },
    )
    return {
        "success": True,
        "message": "Customer created successfully",
        "customer": _customer_out(evaluator, row, 0),
        # Only the creating admin ever sees the generated password.
        "password": password,
        "welcome_email_sent": welcome_sent,
    }


@router.get("/{customer_id}")
async def get_customer(
    customer_id: str,
    _admin: AdminContext = support_dependency,
    store: CustomerStore = customer_store_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
) -> dict[str, object]:
    row = await _load_customer(store, customer_id)
    subaccounts = await store.list_subaccounts(customer_id)
    detail = AdminCustomerDetailOut.model_validate(
        {
            "customer": _customer_out(evaluator, row, len(subaccounts)),
            "subaccounts": [SubaccountOut.model_validate(item) for item in subaccounts],
        }
    )
    return {"success": True, **detail.model_dump(mode="json", by_alias=True)}


@router.put("/{customer_id}")
async def update_customer(
    customer_id: str,
    payload: CustomerUpdateIn,
    admin: AdminContext = admin_write_dependency,
    store: CustomerStore = customer_store_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
) -> dict[str, object]:
    updates: dict[str, Any] = {}
    if payload.plan is not None:
        plan = parse_plan(payload.plan)
        if plan is Plan.UNRECOGNIZED:
            raise _bad_request(f"Unrecognized plan: {payload.plan}")
        updates["plan"] = plan.value
    if payload.status is not None:
        subscription_status = parse_status(payload.status)
        if subscription_status is SubscriptionStatus.UNRECOGNIZED:
            raise _bad_request(f"Unrecognized status: {payload.status}")
        updates["status"] = subscription_status.value
    if payload.max_subaccounts is not None:
        updates["max_subaccounts"] = payload.max_subaccounts
    for field in ("trial_ends_at", "subscription_ends_at"):
        value = getattr(payload, field)
        if value is not None:
            updates[field] = isoformat_utc(value)
    if not updates:
        raise _bad_request("No fields to update")

    row = await store.update_customer(customer_id, updates)
    if row is None:
        raise _not_found()

    logger.info(
        "admin.customer_updated",
        extra={
            "component": "admin",
            "admin_id": admin.admin_id,
            "customer_id": customer_id,
            "fields": sorted(updates),
        },
    )
    current = row.get("total_subaccounts")
    return {
        "success": True,
        "customer": _customer_out(evaluator, row, current if isinstance(current, int) else 0),
    }


@router.post("/{customer_id}/subaccounts")
async def grant_subaccounts(
    customer_id: str,
    payload: SubaccountGrantIn,
    admin: AdminContext = admin_write_dependency,
    store: CustomerStore = customer_store_dependency,
) -> dict[str, object]:
    try:
        additional = validate_quota_increment(payload.additional_count)
    except ValueError as exc:
        raise _bad_request(str(exc)) from exc

    row = await store.increase_max_subaccounts(customer_id, additional)
    if row is None:
        raise _not_found()

    logger.info(
        "admin.subaccounts_granted",
        extra={
            "component": "admin",
            "admin_id": admin.admin_id,
            "customer_id": customer_id,
            "additional_count": additional,
        },
    )
    return {
        "success": True,
        "message": f"Added {additional} subaccount(s)",
        "max_subaccounts": row.get("max_subaccounts"),
    }


@router.delete("/{customer_id}/subaccounts")
async def remove_subaccount(
    customer_id: str,
    payload: SubaccountRemoveIn,
    admin: AdminContext = admin_write_dependency,
    store: CustomerStore = customer_store_dependency,
) -> dict[str, object]:
    await _load_customer(store, customer_id)
    subaccount = await store.select_subaccount(customer_id, payload.location_id)
    if subaccount is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subaccount not found")

    await store.delete_subaccount(str(subaccount.get("id")))
    await store.decrement_total_subaccounts(customer_id)
    logger.info(
        "admin.subaccount_removed",
        extra={
            "component": "admin",
            "admin_id": admin.admin_id,
            "customer_id": customer_id,
            "location_id": payload.location_id,
        },
    )
    return {"success": True, "message": "Subaccount removed"}


@router.post("/{customer_id}/extend-trial")
async def extend_trial(
    customer_id: str,
    payload: TrialExtensionIn,
    admin: AdminContext = admin_write_dependency,
    store: CustomerStore = customer_store_dependency,
    evaluator: EntitlementEvaluator = evaluator_dependency,
) -> dict[str, object]:
    if payload.days < 1:
        raise _bad_request("days must be at least 1")

    row = await _load_customer(store, customer_id)
    snapshot = EntitlementSnapshot.from_row(row)
    new_end = (snapshot.trial_ends_at or evaluator.now()) + timedelta(days=payload.days)

    updated = await store.update_customer(customer_id, {"trial_ends_at": isoformat_utc(new_end)})
    if updated is None:
        raise _not_found()

    logger.info(
        "admin.trial_extended",
        extra={
            "component": "admin",
            "admin_id": admin.admin_id,
            "customer_id": customer_id,
            "days": payload.days,
        },
    )
    return {
        "success": True,
        "message": f"Trial extended by {payload.days} days",
        "new_trial_ends_at": isoformat_utc(new_end),
    }
