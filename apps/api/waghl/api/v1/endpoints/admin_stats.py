from collections import Counter
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends

from waghl.api.v1.schemas.admin import MonthlyCountOut, SubscriptionStatsOut
from waghl.auth.admin import AdminContext, require_admin_role
from waghl.core.supabase_rest import CustomerStore, get_customer_store
from waghl.entitlements.evaluator import Clock
from waghl.entitlements.guard import get_clock
from waghl.entitlements.plans import Plan, SubscriptionStatus, parse_plan, parse_status
from waghl.entitlements.snapshot import parse_utc_timestamp

router = APIRouter(prefix="/admin/subscriptions")
customer_store_dependency = Depends(get_customer_store)
clock_dependency = Depends(get_clock)
support_dependency = require_admin_role("support")

STATS_MONTHS = 12


def last_months(now: datetime, count: int = STATS_MONTHS) -> list[str]:
    """Month keys (YYYY-MM), oldest first, ending with the month of `now`."""
    year, month = now.year, now.month
    keys: list[str] = []
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def monthly_counts(rows: list[dict[str, Any]], field: str, months: list[str]) -> list[MonthlyCountOut]:
    counts: Counter[str] = Counter()
    for row in rows:
        timestamp = parse_utc_timestamp(row.get(field))
        if timestamp is not None:
            counts[timestamp.strftime("%Y-%m")] += 1
    return [MonthlyCountOut(month=month, count=counts.get(month, 0)) for month in months]


def build_subscription_stats(rows: list[dict[str, Any]], now: datetime) -> SubscriptionStatsOut:
    statuses = Counter(parse_status(row.get("status")) for row in rows)
    plans = Counter(parse_plan(row.get("plan")) for row in rows)
    months = last_months(now)
    return SubscriptionStatsOut(
        total_customers=len(rows),
        active_subscriptions=statuses[SubscriptionStatus.ACTIVE],
        trial_customers=statuses[SubscriptionStatus.TRIAL],
        expired_customers=statuses[SubscriptionStatus.EXPIRED],
        cancelled_customers=statuses[SubscriptionStatus.CANCELLED],
        plan_distribution={plan.value: plans[plan] for plan in Plan},
        monthly_signups=monthly_counts(rows, "created_at", months),
        monthly_conversions=monthly_counts(rows, "subscription_started_at", months),
    )


@router.get("/stats", response_model=SubscriptionStatsOut)
async def subscription_stats(
    _admin: AdminContext = support_dependency,
    store: CustomerStore = customer_store_dependency,
    clock: Clock = clock_dependency,
) -> SubscriptionStatsOut:
    rows = await store.list_customers_for_stats()
    return build_subscription_stats(rows, clock())
