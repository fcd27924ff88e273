from enum import Enum


class Plan(str, Enum):
    TRIAL = "trial"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"
    ADMIN = "admin"
    UNRECOGNIZED = "unrecognized"


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    UNRECOGNIZED = "unrecognized"


_PLAN_ALIASES: dict[str, Plan] = {
    "trial": Plan.TRIAL,
    "basic": Plan.BASIC,
    "starter": Plan.BASIC,
    "pro": Plan.PRO,
    "professional": Plan.PRO,
    "enterprise": Plan.ENTERPRISE,
    "admin": Plan.ADMIN,
}

_STATUS_ALIASES: dict[str, SubscriptionStatus] = {
    "trial": SubscriptionStatus.TRIAL,
    "active": SubscriptionStatus.ACTIVE,
    "expired": SubscriptionStatus.EXPIRED,
    "cancelled": SubscriptionStatus.CANCELLED,
    "canceled": SubscriptionStatus.CANCELLED,
}

plan_rank: dict[Plan, int] = {
    Plan.TRIAL: 1,
    Plan.BASIC: 2,
    Plan.PRO: 3,
    Plan.ENTERPRISE: 4,
    Plan.ADMIN: 5,
}

PAID_PLANS = frozenset({Plan.BASIC, Plan.PRO, Plan.ENTERPRISE, Plan.ADMIN})
PURCHASABLE_PLANS = frozenset({Plan.BASIC, Plan.PRO, Plan.ENTERPRISE})


def parse_plan(value: Plan | str | None) -> Plan:
    if isinstance(value, Plan):
        return value
    if not isinstance(value, str):
        return Plan.UNRECOGNIZED
    return _PLAN_ALIASES.get(value.strip().lower(), Plan.UNRECOGNIZED)


def parse_status(value: SubscriptionStatus | str | None) -> SubscriptionStatus:
    if isinstance(value, SubscriptionStatus):
        return value
    if not isinstance(value, str):
        return SubscriptionStatus.UNRECOGNIZED
    return _STATUS_ALIASES.get(value.strip().lower(), SubscriptionStatus.UNRECOGNIZED)


def rank(plan: Plan | str | None) -> int:
    """Position of a plan in the tier hierarchy; unknown plans rank 0."""
    return plan_rank.get(parse_plan(plan), 0)


def meets_minimum(customer_plan: Plan | str | None, required_plan: Plan | str | None) -> bool:
    return rank(customer_plan) >= rank(required_plan)


def is_paid(plan: Plan | str | None) -> bool:
    return parse_plan(plan) in PAID_PLANS
