"""
Entitlement error hierarchy.

- AuthenticationRequired: no authenticated customer, rendered as 401
- EntitlementDenied: a gate refused the request, rendered as 403 with the
  remediation fields of the verdict
- SubaccountConflict: the usage counter moved while linking, rendered as 409
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from waghl.entitlements.evaluator import Verdict


class ErrorCode(str, Enum):
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"
    SUBSCRIPTION_EXPIRED = "SUBSCRIPTION_EXPIRED"
    INVALID_PLAN = "INVALID_PLAN"
    PLAN_UPGRADE_REQUIRED = "PLAN_UPGRADE_REQUIRED"
    TRIAL_ONLY_FEATURE = "TRIAL_ONLY_FEATURE"
    PAID_SUBSCRIPTION_REQUIRED = "PAID_SUBSCRIPTION_REQUIRED"
    SUBACCOUNT_LIMIT_REACHED = "SUBACCOUNT_LIMIT_REACHED"
    SUBACCOUNT_CONFLICT = "SUBACCOUNT_CONFLICT"


class EntitlementError(Exception):
    """Base exception for entitlement failures."""

    status_code = 403

    def __init__(self, message: str, code: ErrorCode) -> None:
        self.message = message
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "message": self.message, "code": self.code.value}


class AuthenticationRequired(EntitlementError):
    status_code = 401

    def __init__(self, message: str = "Customer authentication required") -> None:
        super().__init__(message, ErrorCode.AUTHENTICATION_REQUIRED)


class EntitlementDenied(EntitlementError):
    def __init__(self, verdict: Verdict) -> None:
        if verdict.allowed or verdict.code is None:
            raise ValueError("EntitlementDenied requires a denying verdict")
        self.verdict = verdict
        super().__init__(verdict.message or "Access denied", verdict.code)

    def to_dict(self) -> dict[str, Any]:
        return self.verdict.to_payload()


class SubaccountConflict(EntitlementError):
    status_code = 409

    def __init__(self, message: str = "Subaccount usage changed concurrently. Please retry.") -> None:
        super().__init__(message, ErrorCode.SUBACCOUNT_CONFLICT)
