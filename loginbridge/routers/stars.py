from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends

from loginbridge.core.deps import require_session_secret
from loginbridge.core.http import get_http_client
from loginbridge.core.session import SessionHandle, get_server_session
from loginbridge.schemas.stars import StarRequest, StarStatusResponse, StarToggleResponse
from loginbridge.services.github.stars import star_status, toggle_star

router = APIRouter(
    prefix="/stars",
    tags=["stars"],
    dependencies=[Depends(require_session_secret)],
)


@router.put("", response_model=StarToggleResponse)
def star_repo(
    payload: StarRequest,
    session: SessionHandle = Depends(get_server_session),
    http_client: httpx.Client = Depends(get_http_client),
) -> StarToggleResponse:
    result = toggle_star(
        http_client, session=session, owner=payload.owner, repo=payload.repo, desired=True
    )
    return StarToggleResponse(starred=result.starred)


@router.delete("", response_model=StarToggleResponse)
def unstar_repo(
    payload: StarRequest,
    session: SessionHandle = Depends(get_server_session),
    http_client: httpx.Client = Depends(get_http_client),
) -> StarToggleResponse:
    result = toggle_star(
        http_client, session=session, owner=payload.owner, repo=payload.repo, desired=False
    )
    return StarToggleResponse(starred=result.starred)


@router.get("", response_model=StarStatusResponse)
def starred_status(
    owner: str | None = None,
    repo: str | None = None,
    session: SessionHandle = Depends(get_server_session),
    http_client: httpx.Client = Depends(get_http_client),
) -> StarStatusResponse:
    result = star_status(http_client, session=session, owner=owner, repo=repo)
    return StarStatusResponse(starred=result.starred, connected=result.connected)
