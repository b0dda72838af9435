from __future__ import annotations

import json

import pytest
from fastapi import Response

from loginbridge.core.config import Settings
from loginbridge.core.errors import InvalidInputError, MissingAuthStateError
from loginbridge.services.auth.state import (
    STATE_COOKIE_MARKER,
    CookieStateStore,
    OAuthStateEnvelope,
    issue_state,
    state_cookie_name,
    validate_state,
)

PREFIX = "atproto_oauth_req"
PATH = "/auth/federated"


def _set_cookie_headers(response: Response) -> list[str]:
    return [v.decode("latin-1") for k, v in response.raw_headers if k == b"set-cookie"]


def test_issue_sets_marker_cookie_scoped_to_route(settings: Settings) -> None:
    store = CookieStateStore({}, settings, path=PATH)
    envelope = issue_state(store, prefix=PREFIX, redirect_path="/settings", ttl_seconds=300)

    response = Response()
    store.apply(response)
    (header,) = _set_cookie_headers(response)

    assert len(envelope.id) == 32
    assert header.startswith(f"{PREFIX}_{envelope.id}={STATE_COOKIE_MARKER};")
    assert envelope.id not in header.split(";", 1)[0].split("=", 1)[1]
    assert "Max-Age=300" in header
    assert f"Path={PATH}" in header
    assert "HttpOnly" in header
    assert "SameSite=lax" in header


def test_validate_succeeds_exactly_once(settings: Settings) -> None:
    issuer = CookieStateStore({}, settings, path=PATH)
    envelope = issue_state(issuer, prefix=PREFIX, redirect_path="/", ttl_seconds=300)

    cookies = {state_cookie_name(PREFIX, envelope.id): STATE_COOKIE_MARKER}
    store = CookieStateStore(cookies, settings, path=PATH)
    validate_state(store, envelope, prefix=PREFIX)

    with pytest.raises(MissingAuthStateError):
        validate_state(store, envelope, prefix=PREFIX)

    response = Response()
    store.apply(response)
    (header,) = _set_cookie_headers(response)
    assert header.startswith(f'{PREFIX}_{envelope.id}="";')
    assert "Max-Age=0" in header


def test_validate_fails_when_cookie_absent(settings: Settings) -> None:
    envelope = issue_state(
        CookieStateStore({}, settings, path=PATH), prefix=PREFIX, redirect_path="/", ttl_seconds=1
    )
    with pytest.raises(MissingAuthStateError) as exc_info:
        validate_state(CookieStateStore({}, settings, path=PATH), envelope, prefix=PREFIX)
    assert "enable cookies" in exc_info.value.message


def test_concurrent_attempts_do_not_collide(settings: Settings) -> None:
    store = CookieStateStore({}, settings, path=PATH)
    first = issue_state(store, prefix=PREFIX, redirect_path="/a", ttl_seconds=300)
    second = issue_state(store, prefix=PREFIX, redirect_path="/b", ttl_seconds=300)
    assert first.id != second.id

    cookies = {
        state_cookie_name(PREFIX, first.id): STATE_COOKIE_MARKER,
        state_cookie_name(PREFIX, second.id): STATE_COOKIE_MARKER,
    }
    callback_store = CookieStateStore(cookies, settings, path=PATH)
    validate_state(callback_store, second, prefix=PREFIX)
    validate_state(callback_store, first, prefix=PREFIX)


def test_cookie_value_other_than_marker_is_not_accepted(settings: Settings) -> None:
    envelope = OAuthStateEnvelope.model_validate({"data": {"redirectPath": "/"}, "id": "a" * 32})
    cookies = {state_cookie_name(PREFIX, envelope.id): "forged"}
    store = CookieStateStore(cookies, settings, path=PATH)
    with pytest.raises(MissingAuthStateError):
        validate_state(store, envelope, prefix=PREFIX)


def test_envelope_round_trips_through_provider_state(settings: Settings) -> None:
    envelope = issue_state(
        CookieStateStore({}, settings, path=PATH),
        prefix=PREFIX,
        redirect_path="/settings?tab=2",
        ttl_seconds=300,
    )
    raw = envelope.encode()

    assert json.loads(raw) == {"data": {"redirectPath": "/settings?tab=2"}, "id": envelope.id}
    decoded = OAuthStateEnvelope.decode(raw, trusted_origin=settings.trusted_origin)
    assert decoded == envelope


def test_decode_resanitizes_redirect_path(settings: Settings) -> None:
    raw = json.dumps({"data": {"redirectPath": "https://evil.example/"}, "id": "b" * 32})
    decoded = OAuthStateEnvelope.decode(raw, trusted_origin=settings.trusted_origin)
    assert decoded.redirect_path == "/"


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps({"data": {"redirectPath": "/"}, "id": "../../etc"}),
        json.dumps({"data": {}, "id": "c" * 32}),
    ],
)
def test_decode_rejects_malformed_state(settings: Settings, raw: str) -> None:
    with pytest.raises(InvalidInputError):
        OAuthStateEnvelope.decode(raw, trusted_origin=settings.trusted_origin)


def test_decode_requires_state(settings: Settings) -> None:
    with pytest.raises(MissingAuthStateError):
        OAuthStateEnvelope.decode(None, trusted_origin=settings.trusted_origin)
