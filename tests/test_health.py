from __future__ import annotations

from fastapi.testclient import TestClient

from loginbridge.core.config import get_settings
from loginbridge.core.middleware import RateLimiter
from loginbridge.main import create_app


def test_healthz_ok() -> None:
    client = TestClient(create_app())
    res = client.get("/healthz")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_readyz_ok_with_session_secret() -> None:
    client = TestClient(create_app())
    res = client.get("/readyz")
    assert res.status_code == 200
    assert res.json() == {"status": "ready"}


def test_readyz_fails_without_session_secret(monkeypatch) -> None:
    monkeypatch.setenv("SESSION_SECRET", "")
    get_settings.cache_clear()

    client = TestClient(create_app())
    res = client.get("/readyz")

    assert res.status_code == 503
    assert res.json() == {"statusCode": 503, "message": "session secret not configured"}


def test_responses_carry_request_id_and_security_headers() -> None:
    client = TestClient(create_app())

    res = client.get("/healthz", headers={"x-request-id": "req-123"})

    assert res.headers["x-request-id"] == "req-123"
    assert res.headers["x-content-type-options"] == "nosniff"
    assert res.headers["x-frame-options"] == "DENY"
    assert "content-security-policy" in res.headers


def test_unknown_route_uses_error_body() -> None:
    res = TestClient(create_app()).get("/nope")
    assert res.status_code == 404
    assert res.json() == {"statusCode": 404, "message": "Not Found"}


def test_rate_limit(monkeypatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_REQUESTS_PER_MINUTE", "2")
    get_settings.cache_clear()
    monkeypatch.setattr("loginbridge.main.now_ts", lambda: 1_000_000.0)
    client = TestClient(create_app())

    responses = [client.get("/healthz") for _ in range(3)]

    assert [r.status_code for r in responses] == [200, 200, 429]
    assert responses[2].json() == {"statusCode": 429, "message": "Rate limit exceeded"}
    assert responses[2].headers["retry-after"] == "20"


def test_rate_limiter_fixed_window() -> None:
    limiter = RateLimiter(max_requests=2, window_seconds=60)

    assert limiter.allow("api:1.2.3.4", now_ts=120.0)
    assert limiter.allow("api:1.2.3.4", now_ts=150.0)
    assert not limiter.allow("api:1.2.3.4", now_ts=179.0)
    assert limiter.allow("auth:1.2.3.4", now_ts=179.0)
    assert limiter.retry_after(now_ts=179.0) == 1

    assert limiter.allow("api:1.2.3.4", now_ts=180.0)


def test_rate_limiter_drops_expired_windows_for_new_clients() -> None:
    limiter = RateLimiter(max_requests=5, window_seconds=60)

    for minute in range(100):
        assert limiter.allow(f"api:10.0.0.{minute}", now_ts=minute * 60.0)

    assert list(limiter._windows) == ["api:10.0.0.99"]


def test_unsafe_request_id_is_replaced() -> None:
    client = TestClient(create_app())

    res = client.get("/healthz", headers={"x-request-id": "bad id with spaces"})

    assert res.headers["x-request-id"] != "bad id with spaces"
    assert len(res.headers["x-request-id"]) >= 16


def test_auth_responses_suppress_referrer() -> None:
    res = TestClient(create_app()).get("/auth/classic/session")
    assert res.headers["referrer-policy"] == "no-referrer"
    assert res.headers["cache-control"] == "no-store"
