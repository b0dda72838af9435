from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from loginbridge.core.errors import ProviderCallbackError

logger = logging.getLogger("loginbridge.api")

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"


@dataclass(frozen=True)
class GitHubTokenResponse:
    access_token: str
    token_type: str | None
    scope: str | None


@dataclass(frozen=True)
class GitHubUser:
    id: int
    login: str
    avatar_url: str | None


def api_headers(access_token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {access_token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }


def build_authorization_url(
    *,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    login: str | None = None,
) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
    }
    if login:
        params["login"] = login
    return f"{GITHUB_AUTHORIZE_URL}?{urlencode(params)}"


def exchange_code_for_token(
    client: httpx.Client,
    *,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
) -> GitHubTokenResponse:
    try:
        res = client.post(
            GITHUB_TOKEN_URL,
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as e:
        raise ProviderCallbackError("GitHub token exchange failed") from e

    if res.status_code >= 400:
        # Avoid leaking raw upstream payload.
        raise ProviderCallbackError("GitHub token exchange failed")

    payload = res.json()
    # GitHub reports bad codes with HTTP 200 and an "error" field.
    access_token = payload.get("access_token")
    if not access_token:
        logger.info("GitHub token exchange rejected: %s", payload.get("error") or "no token")
        raise ProviderCallbackError("Failed to obtain GitHub access token")

    return GitHubTokenResponse(
        access_token=access_token,
        token_type=payload.get("token_type"),
        scope=payload.get("scope"),
    )


def get_authenticated_user(client: httpx.Client, *, access_token: str) -> GitHubUser:
    try:
        res = client.get(f"{GITHUB_API_URL}/user", headers=api_headers(access_token))
    except httpx.HTTPError as e:
        raise ProviderCallbackError("GitHub user lookup failed") from e

    if res.status_code >= 400:
        raise ProviderCallbackError("GitHub user lookup failed")

    payload = res.json()
    login = payload.get("login")
    if not login:
        raise ProviderCallbackError("GitHub user lookup returned no login")
    return GitHubUser(
        id=int(payload.get("id") or 0), login=login, avatar_url=payload.get("avatar_url")
    )


def revoke_grant(
    client: httpx.Client, *, access_token: str, client_id: str, client_secret: str
) -> None:
    res = client.request(
        "DELETE",
        f"{GITHUB_API_URL}/applications/{client_id}/token",
        json={"access_token": access_token},
        auth=(client_id, client_secret),
        headers={
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        },
    )
    if res.status_code not in (204, 404):
        logger.warning("GitHub grant revocation returned HTTP %s", res.status_code)
