from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from loginbridge.clients.star_toggle import StarToggleClient
from loginbridge.core.config import Settings
from loginbridge.core.session import open_session
from loginbridge.main import create_app

STARRED_URL = "/user/starred/octocat/hello-world"


class FakeStarsApi:
    def __init__(self, *, status_code: int = 204) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.url.host == "api.github.com"
        assert request.headers["authorization"] == "Bearer gho_test_token"
        return httpx.Response(self.status_code)


def _connect_github(client: TestClient, settings: Settings) -> None:
    handle = open_session({}, settings)
    handle.update({"github": {"accessToken": "gho_test_token", "username": "octocat"}})
    client.cookies.set(settings.SESSION_COOKIE_NAME, handle.seal())


@pytest.fixture()
def upstream() -> FakeStarsApi:
    return FakeStarsApi()


@pytest.fixture()
def client(mock_http, upstream):
    app = create_app()
    mock_http(app, upstream)
    with TestClient(app) as c:
        yield c


BODY = {"owner": "octocat", "repo": "hello-world"}


def test_star_and_unstar(client: TestClient, settings: Settings, upstream: FakeStarsApi) -> None:
    _connect_github(client, settings)

    starred = client.put("/stars", json=BODY)
    unstarred = client.request("DELETE", "/stars", json=BODY)

    assert starred.status_code == 200
    assert starred.json() == {"starred": True}
    assert unstarred.json() == {"starred": False}
    assert [(r.method, r.url.path) for r in upstream.requests] == [
        ("PUT", STARRED_URL),
        ("DELETE", STARRED_URL),
    ]


def test_star_requires_connected_github(client: TestClient, upstream: FakeStarsApi) -> None:
    res = client.put("/stars", json=BODY)

    assert res.status_code == 401
    assert res.json() == {"statusCode": 401, "message": "GitHub account not connected."}
    assert upstream.requests == []


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ({"owner": "octocat"}, "Missing owner or repo."),
        ({"owner": "", "repo": "x"}, "Missing owner or repo."),
        ({"owner": "octocat", "repo": "../../user"}, "Invalid owner or repo."),
        ({"owner": "octo cat", "repo": "x"}, "Invalid owner or repo."),
    ],
)
def test_star_validates_repo_reference(
    client: TestClient, settings: Settings, upstream: FakeStarsApi, body: dict, message: str
) -> None:
    _connect_github(client, settings)

    res = client.put("/stars", json=body)

    assert res.status_code == 400
    assert res.json()["message"] == message
    assert upstream.requests == []


def test_upstream_failure_is_not_reported_as_success(
    client: TestClient, settings: Settings, upstream: FakeStarsApi
) -> None:
    _connect_github(client, settings)
    upstream.status_code = 403

    res = client.put("/stars", json=BODY)

    assert res.status_code == 500
    assert res.json()["message"] == "Failed to star repository."


def test_status_when_not_connected_skips_upstream(
    client: TestClient, upstream: FakeStarsApi
) -> None:
    res = client.get("/stars", params=BODY)

    assert res.json() == {"starred": False, "connected": False}
    assert upstream.requests == []


@pytest.mark.parametrize(("status_code", "starred"), [(204, True), (404, False)])
def test_status_reflects_github(
    client: TestClient,
    settings: Settings,
    upstream: FakeStarsApi,
    status_code: int,
    starred: bool,
) -> None:
    _connect_github(client, settings)
    upstream.status_code = status_code

    res = client.get("/stars", params=BODY)

    assert res.json() == {"starred": starred, "connected": True}
    assert upstream.requests[0].method == "GET"


def test_status_upstream_error(
    client: TestClient, settings: Settings, upstream: FakeStarsApi
) -> None:
    _connect_github(client, settings)
    upstream.status_code = 502

    res = client.get("/stars", params=BODY)

    assert res.status_code == 500
    assert res.json()["message"] == "Failed to check star status."


def test_star_button_against_api(
    client: TestClient, settings: Settings, upstream: FakeStarsApi
) -> None:
    _connect_github(client, settings)
    upstream.status_code = 404
    button = StarToggleClient(client, owner="octocat", repo="hello-world")
    assert button.refresh().connected

    upstream.status_code = 204
    state = button.toggle()
    assert (state.starred, state.delta) == (True, 1)

    upstream.status_code = 500
    state = button.toggle()
    assert (state.starred, state.delta) == (True, 1)
