from datetime import UTC, datetime

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from waghl.core.supabase_rest import get_customer_store
from waghl.core.tokens import issue_token
from waghl.entitlements.guard import get_clock
from waghl.main import app

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
CUSTOMER_ID = "cust-1"
HEADERS = {"Authorization": f"Bearer {issue_token(CUSTOMER_ID, token_type='customer')}"}


@pytest.fixture
def client(fake_store):
    app.dependency_overrides[get_customer_store] = lambda: fake_store
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_link_subaccount_increments_usage(client, fake_store) -> None:
    fake_store.add_customer(CUSTOMER_ID, plan="basic", status="active", max_subaccounts=3, total_subaccounts=2)

    response = client.post(
        "/api/v1/customer/subaccounts",
        headers=HEADERS,
        json={"location_id": "loc-1", "location_name": "Main street"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["subaccount"]["location_id"] == "loc-1"
    assert body["current"] == 3
    assert fake_store.customers[CUSTOMER_ID]["total_subaccounts"] == 3


def test_link_subaccount_at_limit_is_denied(client, fake_store) -> None:
    fake_store.add_customer(CUSTOMER_ID, plan="basic", status="active", max_subaccounts=3, total_subaccounts=3)

    response = client.post("/api/v1/customer/subaccounts", headers=HEADERS, json={"location_id": "loc-1"})

    assert response.status_code == 403
    body = response.json()
    assert body["code"] == "SUBACCOUNT_LIMIT_REACHED"
    assert body["currentSubaccounts"] == 3
    assert body["maxSubaccounts"] == 3
    assert "insert_subaccount" not in fake_store.calls


def test_link_subaccount_requires_active_subscription(client, fake_store) -> None:
    fake_store.add_customer(CUSTOMER_ID, trial_ends_at="2020-01-01T00:00:00Z")

    response = client.post("/api/v1/customer/subaccounts", headers=HEADERS, json={"location_id": "loc-1"})

    assert response.status_code == 403
    assert response.json()["code"] == "TRIAL_EXPIRED"


def test_link_duplicate_location_conflicts(client, fake_store) -> None:
    fake_store.add_customer(CUSTOMER_ID, max_subaccounts=5, total_subaccounts=1)
    fake_store.subaccounts.append({"id": "sub-a", "customer_id": CUSTOMER_ID, "location_id": "loc-1"})

    response = client.post("/api/v1/customer/subaccounts", headers=HEADERS, json={"location_id": "loc-1"})

    assert response.status_code == 409
    assert response.json()["detail"] == "Subaccount is already linked."


def test_concurrent_counter_change_rolls_back_link(client, fake_store) -> None:
    fake_store.add_customer(CUSTOMER_ID, max_subaccounts=2, total_subaccounts=1)
    fake_store.fail_counter_update = True

    response = client.post("/api/v1/customer/subaccounts", headers=HEADERS, json={"location_id": "loc-2"})

    assert response.status_code == 409
    assert response.json()["code"] == "SUBACCOUNT_CONFLICT"
    assert fake_store.subaccounts == []
    assert fake_store.customers[CUSTOMER_ID]["total_subaccounts"] == 1


def test_counter_update_error_removes_inserted_link(client, fake_store, monkeypatch) -> None:
    fake_store.add_customer(CUSTOMER_ID, plan="basic", status="active", max_subaccounts=1, total_subaccounts=0)

    async def failing_counter_update(customer_id: str, *, expected: int, new_total: int) -> bool:
        raise HTTPException(status_code=502, detail="Failed to update subaccount usage in Supabase.")

    monkeypatch.setattr(fake_store, "set_total_subaccounts", failing_counter_update)

    response = client.post("/api/v1/customer/subaccounts", headers=HEADERS, json={"location_id": "loc-1"})

    assert response.status_code == 502
    assert fake_store.subaccounts == []
    assert fake_store.customers[CUSTOMER_ID]["total_subaccounts"] == 0
    assert "delete_subaccount" in fake_store.calls


def test_list_subaccounts(client, fake_store) -> None:
    fake_store.add_customer(CUSTOMER_ID, max_subaccounts=2, total_subaccounts=1)
    fake_store.subaccounts.append(
        {"id": "sub-a", "customer_id": CUSTOMER_ID, "location_id": "loc-1", "status": "active"}
    )

    response = client.get("/api/v1/customer/subaccounts", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert [item["location_id"] for item in body["subaccounts"]] == ["loc-1"]
    assert body["max"] == 2


def test_unlink_decrements_usage_even_when_expired(client, fake_store) -> None:
    fake_store.add_customer(
        CUSTOMER_ID,
        trial_ends_at="2020-01-01T00:00:00Z",
        max_subaccounts=1,
        total_subaccounts=1,
    )
    fake_store.subaccounts.append({"id": "sub-a", "customer_id": CUSTOMER_ID, "location_id": "loc-1"})

    response = client.delete("/api/v1/customer/subaccounts/loc-1", headers=HEADERS)

    assert response.status_code == 200
    assert fake_store.subaccounts == []
    assert fake_store.customers[CUSTOMER_ID]["total_subaccounts"] == 0


def test_unlink_unknown_location_is_404(client, fake_store) -> None:
    fake_store.add_customer(CUSTOMER_ID)

    response = client.delete("/api/v1/customer/subaccounts/loc-x", headers=HEADERS)

    assert response.status_code == 404
