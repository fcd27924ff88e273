import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest

# Default env for app settings in tests.
os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("CUSTOMER_JWT_SECRET", "test-customer-jwt-secret-with-32-bytes")
os.environ.setdefault("ADMIN_JWT_SECRET", "test-admin-jwt-secret-with-32-bytes!!")
os.environ.setdefault("WEBSITE_URL", "https://app.example.com")
os.environ.setdefault("API_RATE_LIMIT_ENABLED", "false")

# Ensure "apps/api" is on sys.path so "from waghl.main import app" works without an install.
API_ROOT = Path(__file__).resolve().parent
if str(API_ROOT) not in sys.path:
    sys.path.insert(0, str(API_ROOT))


class FakeCustomerStore:
    """In-memory stand-in for waghl.core.supabase_rest.CustomerStore."""

    def __init__(self) -> None:
        self.customers: dict[str, dict[str, Any]] = {}
        self.subaccounts: list[dict[str, Any]] = []
        self.admins: dict[str, dict[str, Any]] = {}
        self.notifications: list[dict[str, Any]] = []
        self.calls: list[str] = []
        self.fail_counter_update = False

    def add_customer(self, customer_id: str, **fields: Any) -> dict[str, Any]:
        row = {
            "id": customer_id,
            "email": f"{customer_id}@example.com",
            "plan": "trial",
            "status": "trial",
            "max_subaccounts": 1,
            "total_subaccounts": 0,
            **fields,
        }
        self.customers[customer_id] = row
        return row

    async def select_customer(self, customer_id: str) -> dict[str, Any] | None:
        self.calls.append("select_customer")
        row = self.customers.get(customer_id)
        if row is None:
            return None
        return {key: value for key, value in row.items() if key != "password_hash"}

    async def select_customer_credentials(self, email: str) -> dict[str, Any] | None:
        self.calls.append("select_customer_credentials")
        for row in self.customers.values():
            if row.get("email") == email.strip().lower():
                return dict(row)
        return None

    async def list_customers(self) -> list[dict[str, Any]]:
        self.calls.append("list_customers")
        return [dict(row) for row in self.customers.values()]

    async def select_customer_by_contact(
        self,
        *,
        email: str | None = None,
        phone: str | None = None,
        exclude_customer_id: str | None = None,
    ) -> dict[str, Any] | None:
        self.calls.append("select_customer_by_contact")
        for row in self.customers.values():
            if row["id"] == exclude_customer_id:
                continue
            if (email and row.get("email") == email.strip().lower()) or (phone and row.get("phone") == phone.strip()):
                return {"id": row["id"], "email": row.get("email"), "phone": row.get("phone")}
        return None

    async def insert_customer(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append("insert_customer")
        customer_id = f"cust-{len(self.customers) + 1}"
        row = {"id": customer_id, "max_subaccounts": 1, "total_subaccounts": 0, **payload}
        self.customers[customer_id] = row
        return {key: value for key, value in row.items() if key != "password_hash"}

    async def update_customer(self, customer_id: str, payload: dict[str, Any]) -> dict[str, Any] | None:
        self.calls.append("update_customer")
        row = self.customers.get(customer_id)
        if row is None:
            return None
        row.update(payload)
        return dict(row)

    async def touch_last_login(self, customer_id: str, now: datetime) -> None:
        self.calls.append("touch_last_login")
        self.customers[customer_id]["last_login_at"] = now.isoformat()

    async def set_total_subaccounts(self, customer_id: str, *, expected: int, new_total: int) -> bool:
        self.calls.append("set_total_subaccounts")
        row = self.customers[customer_id]
        if self.fail_counter_update or (row.get("total_subaccounts") or 0) != expected:
            return False
        row["total_subaccounts"] = max(0, new_total)
        return True

    async def decrement_total_subaccounts(self, customer_id: str) -> None:
        self.calls.append("decrement_total_subaccounts")
        row = self.customers[customer_id]
        row["total_subaccounts"] = max(0, (row.get("total_subaccounts") or 0) - 1)

    async def increase_max_subaccounts(self, customer_id: str, additional: int) -> dict[str, Any] | None:
        self.calls.append("increase_max_subaccounts")
        row = self.customers.get(customer_id)
        if row is None:
            return None
        row["max_subaccounts"] = (row.get("max_subaccounts") or 0) + additional
        return dict(row)

    async def list_customers_for_stats(self) -> list[dict[str, Any]]:
        self.calls.append("list_customers_for_stats")
        return [dict(row) for row in self.customers.values()]

    async def list_subaccounts(self, customer_id: str) -> list[dict[str, Any]]:
        self.calls.append("list_subaccounts")
        return [dict(row) for row in self.subaccounts if row["customer_id"] == customer_id]

    async def list_subaccounts_for_customers(self, customer_ids: list[str]) -> list[dict[str, Any]]:
        self.calls.append("list_subaccounts_for_customers")
        return [dict(row) for row in self.subaccounts if row["customer_id"] in customer_ids]

    async def select_subaccount(self, customer_id: str, location_id: str) -> dict[str, Any] | None:
        self.calls.append("select_subaccount")
        for row in self.subaccounts:
            if row["customer_id"] == customer_id and row["location_id"] == location_id:
                return dict(row)
        return None

    async def insert_subaccount(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append("insert_subaccount")
        row = {"id": f"sub-{len(self.subaccounts) + 1}", **payload}
        self.subaccounts.append(row)
        return dict(row)

    async def delete_subaccount(self, subaccount_id: str) -> None:
        self.calls.append("delete_subaccount")
        self.subaccounts = [row for row in self.subaccounts if row["id"] != subaccount_id]

    async def select_admin_user(self, admin_id: str) -> dict[str, Any] | None:
        self.calls.append("select_admin_user")
        row = self.admins.get(admin_id)
        if row is None or not row.get("is_active", True):
            return None
        return {key: value for key, value in row.items() if key != "password"}

    async def select_admin_credentials(self, email: str) -> dict[str, Any] | None:
        self.calls.append("select_admin_credentials")
        for row in self.admins.values():
            if row.get("email") == email.strip().lower() and row.get("is_active", True):
                return dict(row)
        return None

    async def list_notifications(self, customer_id: str, *, limit: int, offset: int) -> list[dict[str, Any]]:
        self.calls.append("list_notifications")
        rows = [dict(row) for row in self.notifications if row["customer_id"] == customer_id]
        rows.sort(key=lambda row: str(row.get("created_at") or ""), reverse=True)
        return rows[offset : offset + limit]

    async def notification_exists(self, customer_id: str, notification_type: str, *, since: datetime) -> bool:
        self.calls.append("notification_exists")
        return any(
            row["customer_id"] == customer_id and row["type"] == notification_type
            for row in self.notifications
        )

    async def insert_notification(
        self,
        customer_id: str,
        notification_type: str,
        *,
        channel: str = "email",
        status_value: str = "pending",
    ) -> dict[str, Any]:
        self.calls.append("insert_notification")
        row = {
            "id": f"notif-{len(self.notifications) + 1}",
            "customer_id": customer_id,
            "type": notification_type,
            "channel": channel,
            "status": status_value,
        }
        self.notifications.append(row)
        return dict(row)

    async def update_notification(self, notification_id: str, payload: dict[str, Any]) -> None:
        self.calls.append("update_notification")
        for row in self.notifications:
            if row["id"] == notification_id:
                row.update(payload)


@pytest.fixture
def fake_store() -> FakeCustomerStore:
    return FakeCustomerStore()
