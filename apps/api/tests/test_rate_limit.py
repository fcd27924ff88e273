import jwt
from fastapi import FastAPI
from fastapi.testclient import TestClient

from waghl.core.tokens import issue_token
from waghl.middleware.rate_limit import RateLimitMiddleware


def _app(**kwargs) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, **kwargs)

    @app.get("/api/v1/ping")
    def ping() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


def test_requests_over_capacity_are_rejected() -> None:
    client = TestClient(_app(max_requests_per_minute=2, monotonic=lambda: 100.0))

    statuses = [client.get("/api/v1/ping").status_code for _ in range(3)]

    assert statuses == [200, 200, 429]
    assert client.get("/api/v1/ping").json()["code"] == "RATE_LIMITED"


def test_non_api_paths_are_not_limited() -> None:
    client = TestClient(_app(max_requests_per_minute=1, monotonic=lambda: 100.0))
    assert [client.get("/healthz").status_code for _ in range(3)] == [200, 200, 200]


def test_buckets_are_keyed_by_session_subject() -> None:
    client = TestClient(_app(max_requests_per_minute=1, monotonic=lambda: 100.0))
    first = {"Authorization": f"Bearer {issue_token('cust-1', token_type='customer')}"}
    second = {"Authorization": f"Bearer {issue_token('cust-2', token_type='customer')}"}

    assert client.get("/api/v1/ping", headers=first).status_code == 200
    assert client.get("/api/v1/ping", headers=second).status_code == 200
    assert client.get("/api/v1/ping", headers=first).status_code == 429


def test_disabled_limiter_passes_everything() -> None:
    client = TestClient(_app(max_requests_per_minute=1, enabled=False))
    assert [client.get("/api/v1/ping").status_code for _ in range(3)] == [200, 200, 200]


def test_forged_tokens_share_the_client_ip_bucket() -> None:
    client = TestClient(_app(max_requests_per_minute=2, monotonic=lambda: 100.0))
    statuses = []
    for index in range(5):
        forged = jwt.encode({"sub": f"cust-{index}", "type": "customer"}, "wrong-secret-with-enough-bytes!!", "HS256")
        statuses.append(client.get("/api/v1/ping", headers={"Authorization": f"Bearer {forged}"}).status_code)

    assert statuses == [200, 200, 429, 429, 429]


def test_idle_buckets_are_pruned_when_tracking_is_full() -> None:
    now = [0.0]
    limiter = RateLimitMiddleware(
        FastAPI(), max_requests_per_minute=60, monotonic=lambda: now[0], max_tracked_clients=2
    )

    assert limiter.allow("ip:10.0.0.1")
    assert limiter.allow("ip:10.0.0.2")
    now[0] = 120.0
    assert limiter.allow("ip:10.0.0.3")

    assert limiter.tracked_clients == 1
