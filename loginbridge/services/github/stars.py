from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import httpx

from loginbridge.core.errors import InvalidInputError, UnauthorizedError, UpstreamServiceError
from loginbridge.core.session import SessionHandle
from loginbridge.services.auth.sessions import read_classic_session
from loginbridge.services.github.oauth import GITHUB_API_URL, api_headers

logger = logging.getLogger("loginbridge.api")

# GitHub owner and repository names; also keeps the values safe as URL path segments.
_REPO_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_.-]{1,100}$")


@dataclass(frozen=True)
class StarStatus:
    starred: bool
    connected: bool


def require_access_token(session: SessionHandle) -> str:
    github = read_classic_session(session)
    if github is None:
        raise UnauthorizedError("GitHub account not connected.")
    return github.access_token


def validate_repo_ref(owner: object, repo: object) -> tuple[str, str]:
    if not isinstance(owner, str) or not isinstance(repo, str) or not owner or not repo:
        raise InvalidInputError("Missing owner or repo.")
    if not _REPO_SEGMENT_RE.match(owner) or not _REPO_SEGMENT_RE.match(repo) or repo in {".", ".."}:
        raise InvalidInputError("Invalid owner or repo.")
    return owner, repo


def _starred_url(owner: str, repo: str) -> str:
    return f"{GITHUB_API_URL}/user/starred/{owner}/{repo}"


def set_star(
    client: httpx.Client, *, access_token: str, owner: str, repo: str, starred: bool
) -> bool:
    """Star or unstar and return the state GitHub confirmed."""
    method = "PUT" if starred else "DELETE"
    action = "star" if starred else "unstar"
    try:
        res = client.request(
            method,
            _starred_url(owner, repo),
            headers={**api_headers(access_token), "Content-Length": "0"},
        )
    except httpx.HTTPError as e:
        raise UpstreamServiceError(f"Failed to {action} repository.") from e

    if res.status_code in (204, 304):
        return starred

    logger.warning("GitHub %s %s/%s returned HTTP %s", action, owner, repo, res.status_code)
    raise UpstreamServiceError(f"Failed to {action} repository.")


def is_starred(client: httpx.Client, *, access_token: str, owner: str, repo: str) -> bool:
    try:
        res = client.get(_starred_url(owner, repo), headers=api_headers(access_token))
    except httpx.HTTPError as e:
        raise UpstreamServiceError("Failed to check star status.") from e

    # 204 when starred, 404 when not.
    if res.status_code == 204:
        return True
    if res.status_code == 404:
        return False

    logger.warning("GitHub star check %s/%s returned HTTP %s", owner, repo, res.status_code)
    raise UpstreamServiceError("Failed to check star status.")


def toggle_star(
    client: httpx.Client, *, session: SessionHandle, owner: object, repo: object, desired: bool
) -> StarStatus:
    access_token = require_access_token(session)
    owner, repo = validate_repo_ref(owner, repo)
    confirmed = set_star(client, access_token=access_token, owner=owner, repo=repo, starred=desired)
    return StarStatus(starred=confirmed, connected=True)


def star_status(
    client: httpx.Client, *, session: SessionHandle, owner: object, repo: object
) -> StarStatus:
    github = read_classic_session(session)
    if github is None:
        return StarStatus(starred=False, connected=False)

    owner, repo = validate_repo_ref(owner, repo)
    starred = is_starred(client, access_token=github.access_token, owner=owner, repo=repo)
    return StarStatus(starred=starred, connected=True)
