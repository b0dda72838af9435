from __future__ import annotations

import logging

import httpx
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from loginbridge.core.config import get_settings
from loginbridge.core.otel import parse_otlp_headers, scrub_auth_query
from loginbridge.main import create_app


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_metrics_endpoint_exposes_http_and_login_metrics(fake_atproto, mock_http) -> None:
    login_labels = {"provider": "atproto", "outcome": "success"}
    logins_before = _sample("loginbridge_oauth_logins_total", login_labels)
    degraded_before = _sample("loginbridge_identity_enrichment_total", {"result": "degraded"})
    app = create_app(atproto_oauth_client=fake_atproto)
    mock_http(app, lambda request: httpx.Response(503))
    client = TestClient(app, follow_redirects=False)

    assert client.get("/healthz").status_code == 200
    client.get("/auth/federated", params={"handle": "alice.example.com"})
    state = str(fake_atproto.authorize_calls[-1]["state"])
    assert client.get("/auth/federated", params={"code": "c", "state": state}).status_code == 302

    res = client.get("/metrics")
    assert res.status_code == 200
    assert "text/plain" in (res.headers.get("content-type") or "")

    body = res.text
    assert "loginbridge_http_requests_total" in body
    assert 'path="/healthz"' in body
    assert "loginbridge_oauth_logins_total" in body
    assert _sample("loginbridge_oauth_logins_total", login_labels) == logins_before + 1
    assert (
        _sample("loginbridge_identity_enrichment_total", {"result": "degraded"})
        == degraded_before + 1
    )


def test_metrics_endpoint_can_be_disabled(monkeypatch) -> None:
    monkeypatch.setenv("ENABLE_PROMETHEUS_METRICS", "false")
    get_settings.cache_clear()
    client = TestClient(create_app())
    assert client.get("/metrics").status_code == 404


def test_request_completion_is_logged(caplog) -> None:
    client = TestClient(create_app())
    with caplog.at_level(logging.INFO, logger="loginbridge.api"):
        client.get("/healthz", headers={"x-request-id": "req-log"})

    lines = [r.getMessage() for r in caplog.records if "http.request.completed" in r.getMessage()]
    assert lines
    assert '"request_id":"req-log"' in lines[-1]
    assert '"status_code":200' in lines[-1]


def test_otel_tracing_disabled_via_config() -> None:
    app = create_app()
    assert app.state.otel_tracing_enabled is False
    assert app.state.otel_tracing_reason == "disabled"


def test_otel_tracing_requires_endpoint(monkeypatch) -> None:
    monkeypatch.setenv("ENABLE_OTEL_TRACING", "true")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT", "")
    get_settings.cache_clear()

    app = create_app()

    assert app.state.otel_tracing_enabled is False
    assert app.state.otel_tracing_reason == "missing_endpoint"


def test_parse_otlp_headers_skips_malformed_tokens() -> None:
    assert parse_otlp_headers("authorization=Bearer x, bad, =v,k=") == {
        "authorization": "Bearer x"
    }


class RecordingSpan:
    def __init__(self) -> None:
        self.attributes: dict[str, object] = {}

    def is_recording(self) -> bool:
        return True

    def set_attribute(self, key: str, value: object) -> None:
        self.attributes[key] = value


def test_auth_callback_query_is_scrubbed_from_spans() -> None:
    span = RecordingSpan()
    scrub_auth_query(
        span,
        {
            "path": "/auth/classic",
            "query_string": b"code=secret&state=xyz",
            "scheme": "https",
            "server": ("api.example.com", 443),
        },
    )

    assert span.attributes["http.target"] == "/auth/classic"
    assert span.attributes["url.query"] == "[redacted]"
    assert "secret" not in str(span.attributes)


def test_non_auth_spans_are_left_alone() -> None:
    span = RecordingSpan()
    scrub_auth_query(span, {"path": "/stars", "query_string": b"owner=a&repo=b"})
    assert span.attributes == {}
