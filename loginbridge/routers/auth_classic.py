from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, Query, Request, Response

from loginbridge.core.config import Settings, get_settings
from loginbridge.core.deps import require_session_secret
from loginbridge.core.http import get_http_client
from loginbridge.core.session import SessionHandle, get_server_session
from loginbridge.routers.oauth_common import finish_oauth_step
from loginbridge.schemas.session import GitHubSessionOut
from loginbridge.services.auth.flow import OAuthFlow
from loginbridge.services.auth.providers import CLASSIC_CALLBACK_PATH, ClassicProvider
from loginbridge.services.auth.sessions import logout_classic, read_classic_session
from loginbridge.services.auth.state import CookieStateStore

router = APIRouter(
    prefix=CLASSIC_CALLBACK_PATH,
    tags=["auth"],
    dependencies=[Depends(require_session_secret)],
)


@router.get("")
def classic_auth(
    request: Request,
    return_to: str | None = Query(default=None, alias="returnTo"),
    login: str | None = None,
    settings: Settings = Depends(get_settings),
    session: SessionHandle = Depends(get_server_session),
    http_client: httpx.Client = Depends(get_http_client),
) -> Response:
    store = CookieStateStore(request.cookies, settings, path=request.url.path)
    flow = OAuthFlow(
        provider=ClassicProvider(http_client=http_client, settings=settings),
        state_store=store,
        session=session,
        settings=settings,
    )

    params = request.query_params
    if "code" in params or "error" in params:
        return finish_oauth_step(lambda: flow.callback(dict(params)), store=store, session=session)
    return finish_oauth_step(
        lambda: flow.authorize(login, return_to=return_to), store=store, session=session
    )


@router.get("/session", response_model=GitHubSessionOut | None)
def classic_session(
    response: Response,
    session: SessionHandle = Depends(get_server_session),
) -> GitHubSessionOut | None:
    response.headers["Cache-Control"] = "no-store"
    github = read_classic_session(session)
    if github is None:
        return None
    # The access token stays server-side.
    return GitHubSessionOut(username=github.username)


@router.delete("/session")
def classic_logout(
    response: Response,
    session: SessionHandle = Depends(get_server_session),
) -> str:
    logout_classic(session)
    session.apply(response)
    response.headers["Cache-Control"] = "no-store"
    return "disconnected"
