from __future__ import annotations

from fastapi import Depends, Request

from loginbridge.core.config import Settings, get_settings
from loginbridge.core.errors import MissingSessionSecretError
from loginbridge.services.atproto.oauth import AtprotoOAuthClient


def require_session_secret(settings: Settings = Depends(get_settings)) -> None:
    # Must run before any cookie or provider access on the auth routes.
    if not settings.session_secret_configured:
        raise MissingSessionSecretError()


def get_optional_atproto_oauth_client(request: Request) -> AtprotoOAuthClient | None:
    return getattr(request.app.state, "atproto_oauth_client", None)
