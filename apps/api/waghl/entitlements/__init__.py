from waghl.entitlements.errors import (
    AuthenticationRequired,
    EntitlementDenied,
    EntitlementError,
    ErrorCode,
    SubaccountConflict,
)
from waghl.entitlements.evaluator import (
    EntitlementEvaluator,
    EntitlementSummary,
    ExpiryState,
    Verdict,
    classify,
)
from waghl.entitlements.plans import (
    Plan,
    SubscriptionStatus,
    meets_minimum,
    parse_plan,
    parse_status,
    rank,
)
from waghl.entitlements.quota import check_subaccount_quota, validate_quota_increment
from waghl.entitlements.snapshot import EntitlementSnapshot

__all__ = [
    "AuthenticationRequired",
    "EntitlementDenied",
    "EntitlementError",
    "EntitlementEvaluator",
    "EntitlementSnapshot",
    "EntitlementSummary",
    "ErrorCode",
    "ExpiryState",
    "Plan",
    "SubaccountConflict",
    "SubscriptionStatus",
    "Verdict",
    "check_subaccount_quota",
    "classify",
    "meets_minimum",
    "parse_plan",
    "parse_status",
    "rank",
    "validate_quota_increment",
]
