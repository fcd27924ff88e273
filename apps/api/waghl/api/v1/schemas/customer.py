import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PurchasablePlan = Literal["basic", "starter", "pro", "professional", "enterprise"]

# E.164: leading +, no leading zero, at most 15 digits.
PHONE_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


def is_valid_phone(value: str) -> bool:
    return PHONE_PATTERN.fullmatch(value) is not None


class LoginIn(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)


class EntitlementSummaryOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan: str
    status: str
    is_active: bool = Field(alias="isActive")
    days_remaining: int | None = Field(alias="daysRemaining")
    expires_at: str | None = Field(alias="expiresAt")
    is_expired: bool = Field(alias="isExpired")


class CustomerOut(BaseModel):
    id: str
    email: str
    phone: str | None = None
    business_name: str | None = None
    plan: str | None = None
    status: str | None = None
    trial_ends_at: datetime | None = None
    subscription_ends_at: datetime | None = None
    max_subaccounts: int | None = None
    total_subaccounts: int | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None


class SubaccountOut(BaseModel):
    id: str
    location_id: str
    company_id: str | None = None
    location_name: str | None = None
    status: str | None = None
    created_at: datetime | None = None


class SubaccountCreateIn(BaseModel):
    location_id: str = Field(min_length=1, max_length=128)
    company_id: str | None = Field(default=None, max_length=128)
    location_name: str | None = Field(default=None, max_length=256)


class UpgradeRequestIn(BaseModel):
    requested_plan: PurchasablePlan


class ProfileUpdateIn(BaseModel):
    business_name: str | None = Field(default=None, max_length=256)
    phone: str | None = Field(default=None, max_length=32)


class NotificationOut(BaseModel):
    id: str
    type: str
    channel: str | None = None
    status: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    created_at: datetime | None = None
