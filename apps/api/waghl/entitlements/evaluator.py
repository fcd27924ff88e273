from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from waghl.entitlements.errors import ErrorCode
from waghl.entitlements.plans import Plan, is_paid, meets_minimum, parse_plan
from waghl.entitlements.snapshot import EntitlementSnapshot

Clock = Callable[[], datetime]
_ONE_DAY_SECONDS = timedelta(days=1).total_seconds()


class ExpiryState(str, Enum):
    TRIAL_ACTIVE = "TRIAL_ACTIVE"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"
    SUBSCRIPTION_ACTIVE = "SUBSCRIPTION_ACTIVE"
    SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"
    INVALID_PLAN = "INVALID_PLAN"


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    code: ErrorCode | None = None
    message: str | None = None
    upgrade_url: str | None = None
    renew_url: str | None = None
    current_plan: str | None = None
    required_plan: str | None = None
    current_subaccounts: int | None = None
    max_subaccounts: int | None = None

    def to_payload(self) -> dict[str, Any]:
        if self.allowed:
            return {"success": True}

        payload: dict[str, Any] = {
            "success": False,
            "message": self.message,
            "code": self.code.value if self.code else None,
        }
        optional = {
            "upgradeUrl": self.upgrade_url,
            "renewUrl": self.renew_url,
            "currentPlan": self.current_plan,
            "requiredPlan": self.required_plan,
            "currentSubaccounts": self.current_subaccounts,
            "maxSubaccounts": self.max_subaccounts,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


ALLOW = Verdict(allowed=True)


@dataclass(frozen=True)
class EntitlementSummary:
    plan: str
    status: str
    is_active: bool
    days_remaining: int | None
    expires_at: datetime | None
    is_expired: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "plan": self.plan,
            "status": self.status,
            "isActive": self.is_active,
            "daysRemaining": self.days_remaining,
            "expiresAt": isoformat_utc(self.expires_at),
            "isExpired": self.is_expired,
        }


def isoformat_utc(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(UTC)


def applicable_expiry(snapshot: EntitlementSnapshot) -> datetime | None:
    """The expiry timestamp selected by the plan, if any."""
    if snapshot.plan is Plan.TRIAL:
        return snapshot.trial_ends_at
    if is_paid(snapshot.plan):
        return snapshot.subscription_ends_at
    return None


def classify(snapshot: EntitlementSnapshot, now: datetime) -> ExpiryState:
    expiry = applicable_expiry(snapshot)
    # Strictly before `now`: an expiry equal to `now` still counts as active.
    expired = expiry is not None and expiry < now

    if snapshot.plan is Plan.TRIAL:
        return ExpiryState.TRIAL_EXPIRED if expired else ExpiryState.TRIAL_ACTIVE
    if is_paid(snapshot.plan):
        return ExpiryState.SUBSCRIPTION_EXPIRED if expired else ExpiryState.SUBSCRIPTION_ACTIVE
    return ExpiryState.INVALID_PLAN


def days_until(expiry: datetime, now: datetime) -> int:
    return math.ceil((expiry - now).total_seconds() / _ONE_DAY_SECONDS)


class EntitlementEvaluator:
    """Pure decision functions over an EntitlementSnapshot.

    The evaluator holds only configuration (remediation URL, support contact)
    and a clock. It performs no I/O, so a single instance is safe to share
    between concurrent requests.
    """

    def __init__(
        self,
        *,
        website_url: str,
        support_email: str | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.upgrade_url = f"{website_url.rstrip('/')}/upgrade"
        self.renew_url = self.upgrade_url
        self.support_email = support_email
        self.clock = clock

    def now(self) -> datetime:
        current = self.clock()
        return current.astimezone(UTC) if current.tzinfo else current.replace(tzinfo=UTC)

    def classify(self, snapshot: EntitlementSnapshot) -> ExpiryState:
        return classify(snapshot, self.now())

    def _trial_expired(self) -> Verdict:
        return Verdict(
            allowed=False,
            code=ErrorCode.TRIAL_EXPIRED,
            message="Your trial has expired. Please upgrade to continue.",
            upgrade_url=self.upgrade_url,
        )

    def _subscription_expired(self) -> Verdict:
        return Verdict(
            allowed=False,
            code=ErrorCode.SUBSCRIPTION_EXPIRED,
            message="Your subscription has expired. Please renew to continue.",
            renew_url=self.renew_url,
        )

    def _invalid_plan(self, snapshot: EntitlementSnapshot) -> Verdict:
        contact = f" at {self.support_email}" if self.support_email else ""
        return Verdict(
            allowed=False,
            code=ErrorCode.INVALID_PLAN,
            message=f"Invalid subscription plan. Please contact support{contact}.",
            current_plan=snapshot.plan_label,
        )

    def check_subscription(self, snapshot: EntitlementSnapshot) -> Verdict:
        state = self.classify(snapshot)
        if state in (ExpiryState.TRIAL_ACTIVE, ExpiryState.SUBSCRIPTION_ACTIVE):
            return ALLOW
        if state is ExpiryState.TRIAL_EXPIRED:
            return self._trial_expired()
        if state is ExpiryState.SUBSCRIPTION_EXPIRED:
            return self._subscription_expired()
        return self._invalid_plan(snapshot)

    def require_minimum_plan(self, snapshot: EntitlementSnapshot, required: Plan | str) -> Verdict:
        if snapshot.plan is Plan.UNRECOGNIZED:
            return self._invalid_plan(snapshot)
        if meets_minimum(snapshot.plan, required):
            return ALLOW

        required_plan = parse_plan(required)
        required_label = required_plan.value if required_plan is not Plan.UNRECOGNIZED else str(required)
        return Verdict(
            allowed=False,
            code=ErrorCode.PLAN_UPGRADE_REQUIRED,
            message=f"This feature requires {required_label} plan or higher. Please upgrade.",
            upgrade_url=self.upgrade_url,
            current_plan=snapshot.plan_label,
            required_plan=required_label,
        )

    def require_active_trial(self, snapshot: EntitlementSnapshot) -> Verdict:
        if snapshot.plan is Plan.UNRECOGNIZED:
            return self._invalid_plan(snapshot)
        if snapshot.plan is not Plan.TRIAL:
            return Verdict(
                allowed=False,
                code=ErrorCode.TRIAL_ONLY_FEATURE,
                message="This feature is only available during trial period.",
                current_plan=snapshot.plan_label,
            )
        if self.classify(snapshot) is ExpiryState.TRIAL_EXPIRED:
            return self._trial_expired()
        return ALLOW

    def require_paid_subscription(self, snapshot: EntitlementSnapshot) -> Verdict:
        if snapshot.plan is Plan.TRIAL:
            return Verdict(
                allowed=False,
                code=ErrorCode.PAID_SUBSCRIPTION_REQUIRED,
                message="This feature requires a paid subscription. Please upgrade.",
                upgrade_url=self.upgrade_url,
                current_plan=snapshot.plan_label,
            )
        state = self.classify(snapshot)
        if state is ExpiryState.INVALID_PLAN:
            return self._invalid_plan(snapshot)
        if state is ExpiryState.SUBSCRIPTION_EXPIRED:
            return self._subscription_expired()
        return ALLOW

    def describe(self, snapshot: EntitlementSnapshot) -> EntitlementSummary:
        now = self.now()
        expiry = applicable_expiry(snapshot)
        recognized = snapshot.plan is not Plan.UNRECOGNIZED

        if expiry is None:
            return EntitlementSummary(
                plan=snapshot.plan_label,
                status=snapshot.status_label,
                is_active=recognized,
                days_remaining=None,
                expires_at=None,
                is_expired=False,
            )

        is_expired = expiry < now
        return EntitlementSummary(
            plan=snapshot.plan_label,
            status=snapshot.status_label,
            is_active=not is_expired,
            days_remaining=days_until(expiry, now),
            expires_at=expiry,
            is_expired=is_expired,
        )
