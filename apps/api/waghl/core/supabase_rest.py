from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx
from fastapi import HTTPException, status

from waghl.core.logging import get_logger
from waghl.core.settings import Settings, get_settings

logger = get_logger("core.supabase_rest")

CUSTOMER_COLUMNS = (
    "id,email,phone,business_name,plan,status,trial_ends_at,subscription_ends_at,"
    "max_subaccounts,total_subaccounts,last_login_at,created_at,subscription_started_at"
)
SUBACCOUNT_COLUMNS = "id,customer_id,location_id,company_id,location_name,status,created_at"
ADMIN_COLUMNS = "id,email,name,role,is_active"
NOTIFICATION_COLUMNS = "id,type,channel,status,error_message,sent_at,created_at"
_CONDITIONAL_UPDATE_ATTEMPTS = 3


def _iso(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _supabase_error_detail(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    for key in ("message", "detail"):
        detail = payload.get(key)
        if isinstance(detail, str) and detail:
            return detail
    return None


def _validated_list_payload(payload: Any, error_message: str) -> list[dict[str, Any]]:
    if not isinstance(payload, list):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_message)
    for item in payload:
        if not isinstance(item, dict):
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_message)
    return payload


class CustomerStore:
    """Service-role access to the customer tables through Supabase PostgREST.

    Constructed explicitly and handed to request handlers through
    `get_customer_store`, so tests can swap it with
    `app.dependency_overrides` instead of patching module globals.
    """

    def __init__(self, *, base_url: str, service_role_key: str, timeout: float = 10.0) -> None:
        self.rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self.service_role_key = service_role_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> CustomerStore:
        return cls(
            base_url=settings.SUPABASE_URL,
            service_role_key=settings.SUPABASE_SERVICE_ROLE_KEY,
            timeout=settings.SUPABASE_TIMEOUT_SECONDS,
        )

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
        error_detail: str,
        conflict_detail: str | None = None,
    ) -> httpx.Response:
        url = f"{self.rest_url}/{table}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(prefer),
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "supabase.request_failed",
                extra={
                    "component": "supabase",
                    "table": table,
                    "method": method,
                    "status_code": exc.response.status_code,
                    "detail": _supabase_error_detail(exc.response),
                },
            )
            if exc.response.status_code == status.HTTP_409_CONFLICT:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=conflict_detail or error_detail,
                ) from exc
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_detail) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "supabase.transport_failed",
                extra={"component": "supabase", "table": table, "method": method},
            )
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error_detail) from exc
        return response

    async def _select(self, table: str, params: dict[str, str], *, error_detail: str) -> list[dict[str, Any]]:
        response = await self._request("GET", table, params=params, error_detail=error_detail)
        return _validated_list_payload(response.json(), f"Invalid {table} response from Supabase.")

    async def _select_one(self, table: str, params: dict[str, str], *, error_detail: str) -> dict[str, Any] | None:
        rows = await self._select(table, {**params, "limit": "1"}, error_detail=error_detail)
        return rows[0] if rows else None

    async def _patch(
        self,
        table: str,
        params: dict[str, str],
        payload: dict[str, Any],
        *,
        error_detail: str,
    ) -> list[dict[str, Any]]:
        response = await self._request(
            "PATCH",
            table,
            params=params,
            json=payload,
            prefer="return=representation",
            error_detail=error_detail,
        )
        return _validated_list_payload(response.json(), f"Invalid {table} update response from Supabase.")

    # customers

    async def select_customer(self, customer_id: str) -> dict[str, Any] | None:
        return await self._select_one(
            "customers",
            {"select": CUSTOMER_COLUMNS, "id": f"eq.{customer_id}"},
            error_detail="Failed to fetch customer from Supabase.",
        )

    async def select_customer_credentials(self, email: str) -> dict[str, Any] | None:
        return await self._select_one(
            "customers",
            {"select": f"{CUSTOMER_COLUMNS},password_hash", "email": f"eq.{email.strip().lower()}"},
            error_detail="Failed to fetch customer from Supabase.",
        )

    async def list_customers(self) -> list[dict[str, Any]]:
        return await self._select(
            "customers",
            {"select": CUSTOMER_COLUMNS, "order": "created_at.desc"},
            error_detail="Failed to fetch customers from Supabase.",
        )

    async def select_customer_by_contact(
        self,
        *,
        email: str | None = None,
        phone: str | None = None,
        exclude_customer_id: str | None = None,
    ) -> dict[str, Any] | None:
        """First customer using the given e-mail or phone, optionally ignoring one customer."""
        filters = []
        if email:
            filters.append(f"email.eq.{email.strip().lower()}")
        if phone:
            filters.append(f"phone.eq.{phone.strip()}")
        if not filters:
            return None
        params = {"select": "id,email,phone", "or": f"({','.join(filters)})"}
        if exclude_customer_id:
            params["id"] = f"neq.{exclude_customer_id}"
        return await self._select_one(
            "customers",
            params,
            error_detail="Failed to fetch customer from Supabase.",
        )

    async def insert_customer(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._request(
            "POST",
            "customers",
            params={"select": CUSTOMER_COLUMNS},
            json=payload,
            prefer="return=representation",
            error_detail="Failed to create customer in Supabase.",
            conflict_detail="Email or phone number already registered",
        )
        rows = _validated_list_payload(response.json(), "Invalid customer insert response from Supabase.")
        if not rows:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Invalid customer insert response from Supabase.",
            )
        return rows[0]

    async def update_customer(self, customer_id: str, payload: dict[str, Any]) -> dict[str, Any] | None:
        rows = await self._patch(
            "customers",
            {"id": f"eq.{customer_id}", "select": CUSTOMER_COLUMNS},
            payload,
            error_detail="Failed to update customer in Supabase.",
        )
        return rows[0] if rows else None

    async def touch_last_login(self, customer_id: str, now: datetime) -> None:
        await self._request(
            "PATCH",
            "customers",
            params={"id": f"eq.{customer_id}"},
            json={"last_login_at": _iso(now)},
            prefer="return=minimal",
            error_detail="Failed to record customer login in Supabase.",
        )

    async def set_total_subaccounts(self, customer_id: str, *, expected: int, new_total: int) -> bool:
        """Compare-and-set on the usage counter.

        Returns False when another request changed the counter first.
        """
        params = {"id": f"eq.{customer_id}", "select": "id,total_subaccounts"}
        if expected == 0:
            params["or"] = "(total_subaccounts.eq.0,total_subaccounts.is.null)"
        else:
            params["total_subaccounts"] = f"eq.{expected}"
        rows = await self._patch(
            "customers",
            params,
            {"total_subaccounts": max(0, new_total)},
            error_detail="Failed to update subaccount usage in Supabase.",
        )
        return bool(rows)

    async def decrement_total_subaccounts(self, customer_id: str) -> None:
        for _ in range(_CONDITIONAL_UPDATE_ATTEMPTS):
            current = await self.select_customer(customer_id)
            if current is None:
                return
            observed = current.get("total_subaccounts")
            observed_total = observed if isinstance(observed, int) and not isinstance(observed, bool) else 0
            if observed_total <= 0:
                return
            if await self.set_total_subaccounts(customer_id, expected=observed_total, new_total=observed_total - 1):
                return
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Subaccount usage changed concurrently. Please retry.",
        )

    async def increase_max_subaccounts(self, customer_id: str, additional: int) -> dict[str, Any] | None:
        for _ in range(_CONDITIONAL_UPDATE_ATTEMPTS):
            current = await self.select_customer(customer_id)
            if current is None:
                return None
            observed = current.get("max_subaccounts")
            observed_max = observed if isinstance(observed, int) and not isinstance(observed, bool) else 0
            params = {"id": f"eq.{customer_id}", "select": CUSTOMER_COLUMNS}
            params["max_subaccounts"] = f"eq.{observed}" if isinstance(observed, int) else "is.null"
            rows = await self._patch(
                "customers",
                params,
                {"max_subaccounts": observed_max + additional},
                error_detail="Failed to update subaccount permissions in Supabase.",
            )
            if rows:
                return rows[0]
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Subaccount permissions changed concurrently. Please retry.",
        )

    async def list_customers_for_stats(self) -> list[dict[str, Any]]:
        return await self._select(
            "customers",
            {"select": "plan,status,created_at,subscription_started_at"},
            error_detail="Failed to fetch customers from Supabase.",
        )

    # subaccounts (linked GHL locations)

    async def list_subaccounts(self, customer_id: str) -> list[dict[str, Any]]:
        return await self._select(
            "ghl_accounts",
            {"select": SUBACCOUNT_COLUMNS, "customer_id": f"eq.{customer_id}", "order": "created_at.desc"},
            error_detail="Failed to fetch subaccounts from Supabase.",
        )

    async def list_subaccounts_for_customers(self, customer_ids: list[str]) -> list[dict[str, Any]]:
        if not customer_ids:
            return []
        return await self._select(
            "ghl_accounts",
            {"select": SUBACCOUNT_COLUMNS, "customer_id": f"in.({','.join(customer_ids)})"},
            error_detail="Failed to fetch subaccounts from Supabase.",
        )

    async def select_subaccount(self, customer_id: str, location_id: str) -> dict[str, Any] | None:
        return await self._select_one(
            "ghl_accounts",
            {"select": SUBACCOUNT_COLUMNS, "customer_id": f"eq.{customer_id}", "location_id": f"eq.{location_id}"},
            error_detail="Failed to fetch subaccount from Supabase.",
        )

    async def insert_subaccount(self, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._request(
            "POST",
            "ghl_accounts",
            params={"select": SUBACCOUNT_COLUMNS},
            json=payload,
            prefer="return=representation",
            error_detail="Failed to link subaccount in Supabase.",
            conflict_detail="Subaccount is already linked.",
        )
        rows = _validated_list_payload(response.json(), "Invalid subaccount insert response from Supabase.")
        if not rows:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Invalid subaccount insert response from Supabase.",
            )
        return rows[0]

    async def delete_subaccount(self, subaccount_id: str) -> None:
        await self._request(
            "DELETE",
            "ghl_accounts",
            params={"id": f"eq.{subaccount_id}"},
            prefer="return=minimal",
            error_detail="Failed to delete subaccount in Supabase.",
        )

    # admin users

    async def select_admin_user(self, admin_id: str) -> dict[str, Any] | None:
        return await self._select_one(
            "admin_users",
            {"select": ADMIN_COLUMNS, "id": f"eq.{admin_id}", "is_active": "eq.true"},
            error_detail="Failed to fetch admin user from Supabase.",
        )

    async def select_admin_credentials(self, email: str) -> dict[str, Any] | None:
        return await self._select_one(
            "admin_users",
            {"select": f"{ADMIN_COLUMNS},password", "email": f"eq.{email.strip().lower()}", "is_active": "eq.true"},
            error_detail="Failed to fetch admin user from Supabase.",
        )

    # trial lifecycle and notifications

    async def list_trials_ending_between(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        return await self._select(
            "customers",
            {
                "select": "id,email,business_name,plan,status,trial_ends_at",
                "plan": "eq.trial",
                "status": "in.(trial,active)",
                "and": f"(trial_ends_at.gte.{_iso(start)},trial_ends_at.lte.{_iso(end)})",
            },
            error_detail="Failed to fetch expiring trials from Supabase.",
        )

    async def list_expired_trials(self, now: datetime) -> list[dict[str, Any]]:
        return await self._select(
            "customers",
            {
                "select": "id,email,business_name,plan,status,trial_ends_at",
                "plan": "eq.trial",
                "status": "in.(trial,active)",
                "trial_ends_at": f"lt.{_iso(now)}",
            },
            error_detail="Failed to fetch expired trials from Supabase.",
        )

    async def list_notifications(self, customer_id: str, *, limit: int, offset: int) -> list[dict[str, Any]]:
        return await self._select(
            "notifications",
            {
                "select": NOTIFICATION_COLUMNS,
                "customer_id": f"eq.{customer_id}",
                "order": "created_at.desc",
                "limit": str(limit),
                "offset": str(offset),
            },
            error_detail="Failed to fetch notifications from Supabase.",
        )

    async def notification_exists(self, customer_id: str, notification_type: str, *, since: datetime) -> bool:
        row = await self._select_one(
            "notifications",
            {
                "select": "id",
                "customer_id": f"eq.{customer_id}",
                "type": f"eq.{notification_type}",
                "created_at": f"gte.{_iso(since)}",
            },
            error_detail="Failed to fetch notifications from Supabase.",
        )
        return row is not None

    async def insert_notification(
        self,
        customer_id: str,
        notification_type: str,
        *,
        channel: str = "email",
        status_value: str = "pending",
    ) -> dict[str, Any]:
        response = await self._request(
            "POST",
            "notifications",
            params={"select": "id,customer_id,type,channel,status,created_at"},
            json={
                "customer_id": customer_id,
                "type": notification_type,
                "channel": channel,
                "status": status_value,
            },
            prefer="return=representation",
            error_detail="Failed to record notification in Supabase.",
        )
        rows = _validated_list_payload(response.json(), "Invalid notification insert response from Supabase.")
        if not rows:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Invalid notification insert response from Supabase.",
            )
        return rows[0]

    async def update_notification(self, notification_id: str, payload: dict[str, Any]) -> None:
        await self._request(
            "PATCH",
            "notifications",
            params={"id": f"eq.{notification_id}"},
            json=payload,
            prefer="return=minimal",
            error_detail="Failed to update notification in Supabase.",
        )


def get_customer_store() -> CustomerStore:
    return CustomerStore.from_settings(get_settings())
