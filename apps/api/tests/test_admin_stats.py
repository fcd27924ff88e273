from datetime import UTC, datetime

from fastapi.testclient import TestClient

from waghl.api.v1.endpoints.admin_stats import build_subscription_stats, last_months
from waghl.core.supabase_rest import get_customer_store
from waghl.core.tokens import issue_token
from waghl.entitlements.guard import get_clock
from waghl.main import app

NOW = datetime(2024, 2, 15, tzinfo=UTC)


def test_last_months_wraps_year() -> None:
    months = last_months(NOW, count=3)
    assert months == ["2023-12", "2024-01", "2024-02"]
    assert len(last_months(NOW)) == 12


def test_build_subscription_stats() -> None:
    rows = [
        {"plan": "trial", "status": "trial", "created_at": "2024-02-01T10:00:00Z"},
        {
            "plan": "professional",
            "status": "active",
            "created_at": "2024-01-05T00:00:00Z",
            "subscription_started_at": "2024-02-02T00:00:00Z",
        },
        {"plan": "basic", "status": "canceled", "created_at": "2022-01-01T00:00:00Z"},
        {"plan": "gold", "status": "expired", "created_at": None},
    ]

    stats = build_subscription_stats(rows, NOW)

    assert stats.total_customers == 4
    assert stats.active_subscriptions == 1
    assert stats.trial_customers == 1
    assert stats.expired_customers == 1
    assert stats.cancelled_customers == 1
    assert stats.plan_distribution["pro"] == 1
    assert stats.plan_distribution["unrecognized"] == 1
    signups = {item.month: item.count for item in stats.monthly_signups}
    assert signups["2024-02"] == 1
    assert signups["2024-01"] == 1
    assert "2022-01" not in signups
    assert stats.monthly_conversions[-1].count == 1


def test_stats_endpoint(fake_store) -> None:
    fake_store.admins["admin-1"] = {"id": "admin-1", "email": "ops@example.com", "role": "support"}
    fake_store.add_customer("cust-1", created_at="2024-02-10T00:00:00Z")
    app.dependency_overrides[get_customer_store] = lambda: fake_store
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    token = issue_token("admin-1", token_type="admin", extra_claims={"isAdmin": True})

    try:
        client = TestClient(app)
        response = client.get("/api/v1/admin/subscriptions/stats", headers={"Authorization": f"Bearer {token}"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    body = response.json()
    assert body["total_customers"] == 1
    assert body["trial_customers"] == 1
    assert body["monthly_signups"][-1] == {"month": "2024-02", "count": 1}
