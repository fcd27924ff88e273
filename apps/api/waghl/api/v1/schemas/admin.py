from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field

from waghl.api.v1.schemas.customer import CustomerOut, EntitlementSummaryOut, SubaccountOut


class AdminLoginIn(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)


class AdminCustomerOut(CustomerOut):
    current_subaccounts: int = 0
    entitlement: EntitlementSummaryOut


class AdminCustomerDetailOut(BaseModel):
    customer: AdminCustomerOut
    subaccounts: list[SubaccountOut]


class CustomerCreateIn(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    phone: str = Field(min_length=1, max_length=32)
    business_name: str = Field(min_length=1, max_length=256)
    plan: str = "trial"


class CustomerUpdateIn(BaseModel):
    plan: str | None = Field(
        default=None,
        validation_alias=AliasChoices("plan", "subscription_plan"),
    )
    status: str | None = Field(
        default=None,
        validation_alias=AliasChoices("status", "subscription_status"),
    )
    max_subaccounts: int | None = Field(default=None, ge=0)
    trial_ends_at: datetime | None = None
    subscription_ends_at: datetime | None = None


class SubaccountGrantIn(BaseModel):
    additional_count: int


class SubaccountRemoveIn(BaseModel):
    location_id: str = Field(min_length=1, max_length=128)


class TrialExtensionIn(BaseModel):
    days: int


class MonthlyCountOut(BaseModel):
    month: str
    count: int


class SubscriptionStatsOut(BaseModel):
    total_customers: int
    active_subscriptions: int
    trial_customers: int
    expired_customers: int
    cancelled_customers: int
    plan_distribution: dict[str, int]
    monthly_signups: list[MonthlyCountOut]
    monthly_conversions: list[MonthlyCountOut]
