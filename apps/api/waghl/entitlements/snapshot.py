from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from waghl.entitlements.plans import Plan, SubscriptionStatus, parse_plan, parse_status


def parse_utc_timestamp(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.astimezone(UTC) if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _non_negative_int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def _first_str(row: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = row.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


@dataclass(frozen=True)
class EntitlementSnapshot:
    """Per-request view of what a customer is entitled to.

    Built fresh from the customer row on every request and never cached.
    `raw_plan` keeps the stored value so denials and operator logs can show
    exactly what the row contained when the plan is unrecognized.
    """

    customer_id: str
    plan: Plan
    status: SubscriptionStatus
    trial_ends_at: datetime | None = None
    subscription_ends_at: datetime | None = None
    max_subaccounts: int = 0
    total_subaccounts: int = 0
    raw_plan: str | None = None
    email: str | None = None

    @property
    def plan_label(self) -> str:
        if self.plan is Plan.UNRECOGNIZED:
            return self.raw_plan or Plan.UNRECOGNIZED.value
        return self.plan.value

    @property
    def status_label(self) -> str:
        return self.status.value

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> EntitlementSnapshot:
        raw_plan = _first_str(row, "plan")
        raw_status = _first_str(row, "status")
        return cls(
            customer_id=str(row.get("id") or ""),
            plan=parse_plan(raw_plan),
            status=parse_status(raw_status),
            trial_ends_at=parse_utc_timestamp(row.get("trial_ends_at")),
            subscription_ends_at=parse_utc_timestamp(row.get("subscription_ends_at")),
            max_subaccounts=_non_negative_int(row.get("max_subaccounts")),
            total_subaccounts=_non_negative_int(row.get("total_subaccounts")),
            raw_plan=raw_plan,
            email=_first_str(row, "email"),
        )
