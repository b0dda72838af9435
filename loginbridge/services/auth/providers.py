from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from loginbridge.core.config import Settings
from loginbridge.core.errors import InvalidInputError, UnconfiguredProviderError
from loginbridge.services.atproto.identity import enrich_identity
from loginbridge.services.atproto.oauth import AtprotoOAuthClient, OAuthCallbackError
from loginbridge.services.auth.identity import (
    AuthenticatedIdentity,
    ProviderKind,
    is_valid_federated_identifier,
)
from loginbridge.services.github.oauth import (
    build_authorization_url,
    exchange_code_for_token,
    get_authenticated_user,
    revoke_grant,
)

logger = logging.getLogger("loginbridge.api")

CLASSIC_CALLBACK_PATH = "/auth/classic"


@dataclass(frozen=True)
class ProviderGrant:
    """Provider-side result of a validated callback, before the app accepts it."""

    state: str | None
    credential: Any


class OAuthProvider(Protocol):
    kind: ProviderKind
    name: str
    state_cookie_prefix: str
    retry_hint: str

    def ensure_configured(self) -> None: ...

    def validate_identifier(self, identifier: str | None) -> None: ...

    def authorize_url(self, identifier: str | None, *, state: str, create: bool) -> str: ...

    def callback(self, params: Mapping[str, str]) -> ProviderGrant: ...

    def complete(self, grant: ProviderGrant) -> AuthenticatedIdentity: ...

    def sign_out(self, grant: ProviderGrant) -> None: ...


class FederatedProvider:
    kind: ProviderKind = "federated"
    name = "atproto"
    state_cookie_prefix = "atproto_oauth_req"
    retry_hint = "Please login and try again."

    def __init__(
        self, *, client: AtprotoOAuthClient, http_client: httpx.Client, settings: Settings
    ) -> None:
        self._client = client
        self._http = http_client
        self._settings = settings

    def ensure_configured(self) -> None:
        # The client dependency already refuses to resolve when unconfigured.
        return None

    def validate_identifier(self, identifier: str | None) -> None:
        if not is_valid_federated_identifier(identifier):
            raise InvalidInputError("Invalid handle parameter")

    def authorize_url(self, identifier: str | None, *, state: str, create: bool) -> str:
        assert identifier is not None
        return str(
            self._client.authorize(
                identifier,
                scope=self._settings.ATPROTO_OAUTH_SCOPE,
                state=state,
                prompt="create" if create else None,
            )
        )

    def callback(self, params: Mapping[str, str]) -> ProviderGrant:
        result = self._client.callback(params)
        return ProviderGrant(state=result.state, credential=result.session)

    def complete(self, grant: ProviderGrant) -> AuthenticatedIdentity:
        result = enrich_identity(self._http, session=grant.credential, settings=self._settings)
        return result.identity

    def sign_out(self, grant: ProviderGrant) -> None:
        grant.credential.sign_out()


class ClassicProvider:
    kind: ProviderKind = "classic"
    name = "github"
    state_cookie_prefix = "github_oauth_req"
    retry_hint = "Please try again."

    def __init__(self, *, http_client: httpx.Client, settings: Settings) -> None:
        self._http = http_client
        self._settings = settings

    @property
    def redirect_uri(self) -> str:
        return f"{self._settings.API_BASE_URL}{CLASSIC_CALLBACK_PATH}"

    def ensure_configured(self) -> None:
        if not self._settings.github_configured:
            raise UnconfiguredProviderError("GitHub OAuth is not configured.")

    def validate_identifier(self, identifier: str | None) -> None:
        # Optional login hint; GitHub validates it on its side.
        if identifier is not None and not identifier.strip():
            raise InvalidInputError("Invalid login parameter")

    def authorize_url(self, identifier: str | None, *, state: str, create: bool) -> str:
        return build_authorization_url(
            client_id=self._settings.GITHUB_CLIENT_ID,
            redirect_uri=self.redirect_uri,
            scope=self._settings.GITHUB_OAUTH_SCOPE,
            state=state,
            login=identifier,
        )

    def callback(self, params: Mapping[str, str]) -> ProviderGrant:
        error = params.get("error")
        if error:
            raise OAuthCallbackError(
                params.get("error_description") or error, state=params.get("state"), params=params
            )
        code = params.get("code")
        if not code:
            raise OAuthCallbackError("Missing OAuth code", state=params.get("state"), params=params)

        token = exchange_code_for_token(
            self._http,
            code=code,
            client_id=self._settings.GITHUB_CLIENT_ID,
            client_secret=self._settings.GITHUB_CLIENT_SECRET,
            redirect_uri=self.redirect_uri,
        )
        return ProviderGrant(state=params.get("state"), credential=token)

    def complete(self, grant: ProviderGrant) -> AuthenticatedIdentity:
        access_token = grant.credential.access_token
        user = get_authenticated_user(self._http, access_token=access_token)
        return AuthenticatedIdentity(
            provider_kind="classic",
            subject_id=str(user.id),
            handle=user.login,
            avatar_url=user.avatar_url,
            access_token=access_token,
        )

    def sign_out(self, grant: ProviderGrant) -> None:
        revoke_grant(
            self._http,
            access_token=grant.credential.access_token,
            client_id=self._settings.GITHUB_CLIENT_ID,
            client_secret=self._settings.GITHUB_CLIENT_SECRET,
        )
