from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, Query, Request, Response

from loginbridge.core.config import Settings, get_settings
from loginbridge.core.deps import get_optional_atproto_oauth_client, require_session_secret
from loginbridge.core.http import get_http_client
from loginbridge.core.session import SessionHandle, get_server_session
from loginbridge.routers.oauth_common import finish_oauth_step
from loginbridge.schemas.session import PublicSession
from loginbridge.services.atproto.oauth import AtprotoOAuthClient, get_atproto_oauth_client
from loginbridge.services.auth.flow import OAuthFlow
from loginbridge.services.auth.providers import FederatedProvider
from loginbridge.services.auth.sessions import logout_federated, read_public_session
from loginbridge.services.auth.state import CookieStateStore

router = APIRouter(
    prefix="/auth/federated",
    tags=["auth"],
    dependencies=[Depends(require_session_secret)],
)


@router.get("")
def federated_auth(
    request: Request,
    handle: str | None = None,
    return_to: str | None = Query(default=None, alias="returnTo"),
    create: str | None = None,
    settings: Settings = Depends(get_settings),
    session: SessionHandle = Depends(get_server_session),
    client: AtprotoOAuthClient = Depends(get_atproto_oauth_client),
    http_client: httpx.Client = Depends(get_http_client),
) -> Response:
    store = CookieStateStore(request.cookies, settings, path=request.url.path)
    flow = OAuthFlow(
        provider=FederatedProvider(client=client, http_client=http_client, settings=settings),
        state_store=store,
        session=session,
        settings=settings,
    )

    # The provider redirects back to this same route without a handle. An empty
    # handle is still a sign-in attempt and fails validation.
    if "handle" in request.query_params:
        return finish_oauth_step(
            lambda: flow.authorize(handle, return_to=return_to, create=bool(create)),
            store=store,
            session=session,
        )
    return finish_oauth_step(
        lambda: flow.callback(dict(request.query_params)), store=store, session=session
    )


@router.get(
    "/session",
    response_model=PublicSession | None,
    response_model_exclude_none=True,
)
def federated_session(
    response: Response,
    session: SessionHandle = Depends(get_server_session),
) -> dict | None:
    public = read_public_session(session)
    session.apply(response)
    response.headers["Cache-Control"] = "no-store"
    return public


@router.delete("/session")
def federated_logout(
    response: Response,
    session: SessionHandle = Depends(get_server_session),
    client: AtprotoOAuthClient | None = Depends(get_optional_atproto_oauth_client),
) -> str:
    logout_federated(session, client)
    session.apply(response)
    response.headers["Cache-Control"] = "no-store"
    return "Session cleared"
