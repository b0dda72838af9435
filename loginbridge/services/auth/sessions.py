from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from loginbridge.core.session import SessionHandle
from loginbridge.schemas.session import GitHubSession, PublicSession
from loginbridge.services.atproto.oauth import AtprotoOAuthClient
from loginbridge.services.auth.identity import AuthenticatedIdentity

logger = logging.getLogger("loginbridge.api")

PUBLIC_KEY = "public"
GITHUB_KEY = "github"
# Written by the previous login implementation; only read to force a re-login.
LEGACY_OAUTH_SESSION_KEY = "oauthSession"


def login_patch(identity: AuthenticatedIdentity) -> dict[str, Any]:
    if identity.provider_kind == "federated":
        public: dict[str, Any] = {
            "did": identity.subject_id,
            "handle": identity.handle,
            "pds": identity.pds,
        }
        if identity.avatar_url:
            public["avatar"] = identity.avatar_url
        # Rejects a non-DID subject before anything is persisted.
        PublicSession.model_validate(public)
        return {PUBLIC_KEY: public}

    if not identity.access_token or not identity.handle:
        raise ValueError("classic identity requires an access token and a username")
    return {GITHUB_KEY: {"accessToken": identity.access_token, "username": identity.handle}}


def apply_login(session: SessionHandle, identity: AuthenticatedIdentity) -> None:
    session.update(login_patch(identity))


def read_public_session(session: SessionHandle) -> dict[str, Any] | None:
    data = session.data
    try:
        public = PublicSession.model_validate(data.get(PUBLIC_KEY))
    except ValidationError:
        return None

    out = public.model_dump(exclude_none=True)

    # One-time upgrade of sessions from the previous login implementation.
    # TODO: drop once no sealed cookie older than SESSION_TTL_SECONDS can carry oauthSession.
    if data.get(LEGACY_OAUTH_SESSION_KEY):
        session.update({LEGACY_OAUTH_SESSION_KEY: None})
        out["relogin"] = True

    return out


def logout_federated(session: SessionHandle, client: AtprotoOAuthClient | None) -> None:
    public = session.data.get(PUBLIC_KEY)
    did = public.get("did") if isinstance(public, dict) else None

    if did and client is not None:
        try:
            client.restore(did).sign_out()
        except Exception as exc:  # noqa: BLE001
            # The local session is cleared even when provider sign-out fails.
            logger.warning("AT Protocol sign-out failed: %s", type(exc).__name__)

    session.update({PUBLIC_KEY: None, LEGACY_OAUTH_SESSION_KEY: None})
    logger.info("auth.logout provider=atproto")


def read_classic_session(session: SessionHandle) -> GitHubSession | None:
    try:
        return GitHubSession.model_validate(session.data.get(GITHUB_KEY))
    except ValidationError:
        return None


def logout_classic(session: SessionHandle) -> None:
    session.update({GITHUB_KEY: None})
    logger.info("auth.logout provider=github")
