import pytest

from waghl.entitlements.errors import EntitlementDenied, ErrorCode
from waghl.entitlements.evaluator import ALLOW
from waghl.entitlements.quota import check_subaccount_quota, validate_quota_increment
from waghl.entitlements.snapshot import EntitlementSnapshot


def _snapshot(total: int, maximum: int) -> EntitlementSnapshot:
    return EntitlementSnapshot.from_row(
        {"id": "cust-1", "plan": "basic", "status": "active", "total_subaccounts": total, "max_subaccounts": maximum}
    )


def test_quota_allows_below_limit() -> None:
    assert check_subaccount_quota(_snapshot(2, 3)) == ALLOW


def test_quota_denies_at_limit() -> None:
    verdict = check_subaccount_quota(_snapshot(3, 3))

    assert verdict.allowed is False
    assert verdict.code is ErrorCode.SUBACCOUNT_LIMIT_REACHED
    payload = verdict.to_payload()
    assert payload["currentSubaccounts"] == 3
    assert payload["maxSubaccounts"] == 3
    assert "(3/3)" in payload["message"]


def test_quota_checks_the_whole_delta() -> None:
    assert check_subaccount_quota(_snapshot(1, 3), delta=2).allowed is True
    assert check_subaccount_quota(_snapshot(1, 3), delta=3).allowed is False


@pytest.mark.parametrize("delta", [0, -1])
def test_quota_rejects_non_positive_delta(delta: int) -> None:
    with pytest.raises(ValueError):
        check_subaccount_quota(_snapshot(0, 3), delta=delta)


def test_validate_quota_increment() -> None:
    assert validate_quota_increment(2) == 2
    for value in (0, -3, True, 1.5, "2", None):
        with pytest.raises(ValueError):
            validate_quota_increment(value)


def test_denied_error_carries_verdict_payload() -> None:
    verdict = check_subaccount_quota(_snapshot(1, 1))
    error = EntitlementDenied(verdict)

    assert error.status_code == 403
    assert error.to_dict() == verdict.to_payload()


def test_denied_error_refuses_allowing_verdict() -> None:
    with pytest.raises(ValueError):
        EntitlementDenied(ALLOW)
