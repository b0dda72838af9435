from __future__ import annotations

import os
from collections.abc import Callable, Generator, Mapping
from urllib.parse import urlencode

import httpx
import pytest

# Must be in place before loginbridge.main builds its module-level app.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SESSION_SECRET", "test-session-secret-with-at-least-32-chars")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("API_BASE_URL", "http://testserver")
os.environ.setdefault("CLIENT_ORIGIN", "http://testserver")
os.environ.setdefault("GITHUB_CLIENT_ID", "test-github-client-id")
os.environ.setdefault("GITHUB_CLIENT_SECRET", "test-github-client-secret")
os.environ.setdefault("RATE_LIMIT_REQUESTS_PER_MINUTE", "1000")
os.environ.setdefault("ENABLE_OTEL_TRACING", "false")

from loginbridge.core.config import Settings, get_settings  # noqa: E402
from loginbridge.core.http import get_http_client  # noqa: E402
from loginbridge.core.session import SessionHandle, open_session  # noqa: E402
from loginbridge.services.atproto.oauth import (  # noqa: E402
    CallbackResult,
    OAuthCallbackError,
    TokenInfo,
)

FAKE_ATPROTO_AUTHORIZE_URL = "https://bsky.social/oauth/authorize"


class FakeAtprotoSession:
    def __init__(self, did: str, *, aud: str = "https://pds.example.com") -> None:
        self.did = did
        self.aud = aud
        self.sign_out_calls = 0

    @property
    def signed_out(self) -> bool:
        return self.sign_out_calls > 0

    def get_token_info(self) -> TokenInfo:
        return TokenInfo(aud=self.aud, sub=self.did)

    def sign_out(self) -> None:
        self.sign_out_calls += 1


class FakeAtprotoOAuthClient:
    """Stands in for the AT Protocol OAuth client library."""

    def __init__(self, *, did: str = "did:plc:alice123", aud: str = "https://pds.example.com"):
        self.did = did
        self.aud = aud
        self.authorize_calls: list[dict[str, object]] = []
        self.sessions: list[FakeAtprotoSession] = []

    def authorize(
        self, identifier: str, *, scope: str, state: str, prompt: str | None = None
    ) -> str:
        self.authorize_calls.append(
            {"identifier": identifier, "scope": scope, "state": state, "prompt": prompt}
        )
        query = urlencode({"request_uri": "urn:req:1", "state": state})
        return f"{FAKE_ATPROTO_AUTHORIZE_URL}?{query}"

    def callback(self, params: Mapping[str, str]) -> CallbackResult:
        if params.get("error"):
            raise OAuthCallbackError(
                params.get("error_description") or params["error"],
                state=params.get("state"),
                params=params,
            )
        if not params.get("code"):
            raise OAuthCallbackError("Missing code", state=params.get("state"), params=params)
        session = FakeAtprotoSession(self.did, aud=self.aud)
        self.sessions.append(session)
        return CallbackResult(session=session, state=params.get("state"))

    def restore(self, did: str) -> FakeAtprotoSession:
        session = FakeAtprotoSession(did, aud=self.aud)
        self.sessions.append(session)
        return session


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings() -> Settings:
    return get_settings()


@pytest.fixture()
def session_handle(settings: Settings) -> SessionHandle:
    return open_session({}, settings)


@pytest.fixture()
def fake_atproto() -> FakeAtprotoOAuthClient:
    return FakeAtprotoOAuthClient()


@pytest.fixture()
def mock_http() -> Generator[Callable[..., httpx.Client], None, None]:
    """Route the app's outbound HTTP through an httpx.MockTransport handler."""
    clients: list[httpx.Client] = []

    def _install(app, handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
        http_client = httpx.Client(transport=httpx.MockTransport(handler), timeout=10.0)
        clients.append(http_client)

        def override_http_client() -> Generator[httpx.Client, None, None]:
            yield http_client

        app.dependency_overrides[get_http_client] = override_http_client
        return http_client

    yield _install

    for c in clients:
        c.close()
