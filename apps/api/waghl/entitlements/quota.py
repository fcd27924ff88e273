from waghl.entitlements.errors import ErrorCode
from waghl.entitlements.evaluator import ALLOW, Verdict
from waghl.entitlements.snapshot import EntitlementSnapshot


def check_subaccount_quota(snapshot: EntitlementSnapshot, delta: int = 1) -> Verdict:
    if delta < 1:
        raise ValueError("delta must be at least 1")

    if snapshot.total_subaccounts + delta <= snapshot.max_subaccounts:
        return ALLOW

    return Verdict(
        allowed=False,
        code=ErrorCode.SUBACCOUNT_LIMIT_REACHED,
        message=(
            f"Subaccount limit reached ({snapshot.total_subaccounts}/{snapshot.max_subaccounts}). "
            "Please upgrade or contact support to add more subaccounts."
        ),
        current_subaccounts=snapshot.total_subaccounts,
        max_subaccounts=snapshot.max_subaccounts,
    )


def validate_quota_increment(additional_count: object) -> int:
    # bool is an int subclass; True must not count as an increment of 1.
    if isinstance(additional_count, bool) or not isinstance(additional_count, int):
        raise ValueError("additional_count must be an integer")
    if additional_count < 1:
        raise ValueError("additional_count must be at least 1")
    return additional_count
