import itertools

import pytest

from waghl.entitlements.plans import (
    Plan,
    SubscriptionStatus,
    is_paid,
    meets_minimum,
    parse_plan,
    parse_status,
    rank,
)

KNOWN_PLANS = ["trial", "basic", "pro", "enterprise", "admin"]


def test_plan_ranks_follow_tier_order() -> None:
    assert [rank(plan) for plan in KNOWN_PLANS] == [1, 2, 3, 4, 5]


@pytest.mark.parametrize("value", ["unknown_tier", "", "  ", None, 42])
def test_unknown_plans_rank_zero(value) -> None:
    assert rank(value) == 0
    assert parse_plan(value) is Plan.UNRECOGNIZED


def test_plan_aliases_rank_as_canonical_tier() -> None:
    assert parse_plan("starter") is Plan.BASIC
    assert parse_plan("Professional") is Plan.PRO
    assert rank("starter") == rank("basic")
    assert rank(" PRO ") == rank("professional")


def test_meets_minimum_is_reflexive_for_known_plans() -> None:
    for plan in KNOWN_PLANS:
        assert meets_minimum(plan, plan) is True


def test_meets_minimum_is_transitive() -> None:
    for a, b, c in itertools.product(KNOWN_PLANS, repeat=3):
        if meets_minimum(a, b) and meets_minimum(b, c):
            assert meets_minimum(a, c)


def test_meets_minimum_matches_rank_comparison() -> None:
    for customer, required in itertools.product(KNOWN_PLANS, repeat=2):
        assert meets_minimum(customer, required) is (rank(customer) >= rank(required))


def test_unknown_plan_never_meets_a_known_requirement() -> None:
    for required in KNOWN_PLANS:
        assert meets_minimum("unknown_tier", required) is False


def test_paid_tiers() -> None:
    assert [plan for plan in KNOWN_PLANS if is_paid(plan)] == ["basic", "pro", "enterprise", "admin"]
    assert is_paid("unknown_tier") is False


def test_parse_status_accepts_american_spelling() -> None:
    assert parse_status("canceled") is SubscriptionStatus.CANCELLED
    assert parse_status("ACTIVE") is SubscriptionStatus.ACTIVE
    assert parse_status("paused") is SubscriptionStatus.UNRECOGNIZED
    assert parse_status(None) is SubscriptionStatus.UNRECOGNIZED
