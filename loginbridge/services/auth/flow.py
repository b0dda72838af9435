"""Authorize/callback orchestration shared by both OAuth providers.

A login attempt moves INIT -> AUTHORIZING (state cookie issued, browser sent to
the provider) -> CALLBACK_RECEIVED -> VALIDATED -> SESSION_UPDATED, or ends in
FAILED. Once the provider has established its own session, any failure on the
way to SESSION_UPDATED signs that session out again before the error
propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from loginbridge.core.config import Settings
from loginbridge.core.errors import LoginBridgeError, ProviderCallbackError
from loginbridge.core.metrics import observe_oauth_login
from loginbridge.core.session import SessionHandle
from loginbridge.services.atproto.oauth import OAuthCallbackError
from loginbridge.services.auth.providers import OAuthProvider, ProviderGrant
from loginbridge.services.auth.redirects import DEFAULT_REDIRECT_PATH, sanitize_redirect
from loginbridge.services.auth.sessions import apply_login
from loginbridge.services.auth.state import (
    OAuthStateEnvelope,
    StateStore,
    issue_state,
    state_cookie_name,
    validate_state,
)

logger = logging.getLogger("loginbridge.api")

USER_CANCELLED_ERROR = "access_denied"


class OAuthFlow:
    def __init__(
        self,
        *,
        provider: OAuthProvider,
        state_store: StateStore,
        session: SessionHandle,
        settings: Settings,
    ) -> None:
        self.provider = provider
        self.state_store = state_store
        self.session = session
        self.settings = settings

    def authorize(
        self, identifier: str | None, *, return_to: str | None, create: bool = False
    ) -> str:
        self.provider.ensure_configured()
        self.provider.validate_identifier(identifier)

        redirect_path = sanitize_redirect(return_to, self.settings.trusted_origin)
        envelope = issue_state(
            self.state_store,
            prefix=self.provider.state_cookie_prefix,
            redirect_path=redirect_path,
            ttl_seconds=self.settings.OAUTH_STATE_TTL_SECONDS,
        )
        try:
            return self.provider.authorize_url(identifier, state=envelope.encode(), create=create)
        except LoginBridgeError:
            raise
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or "Failed to initiate authentication"
            raise ProviderCallbackError(self._with_hint(message)) from exc

    def callback(self, params: Mapping[str, str]) -> str:
        """Finish a login attempt and return the same-origin path to send the browser to."""
        self.provider.ensure_configured()
        try:
            grant = self.provider.callback(params)
        except OAuthCallbackError as exc:
            return self._handle_provider_error(exc, params)
        except ProviderCallbackError as exc:
            self._consume_quietly(params.get("state"))
            observe_oauth_login(provider=self.provider.name, outcome="failed")
            raise ProviderCallbackError(self._with_hint(exc.message)) from exc
        except LoginBridgeError:
            self._consume_quietly(params.get("state"))
            observe_oauth_login(provider=self.provider.name, outcome="failed")
            raise
        except Exception as exc:  # noqa: BLE001
            self._consume_quietly(params.get("state"))
            observe_oauth_login(provider=self.provider.name, outcome="failed")
            logger.exception("OAuth callback failed for provider=%s", self.provider.name)
            raise ProviderCallbackError(self._with_hint("Authentication failed")) from exc

        try:
            redirect_path = self._accept(grant)
        except ProviderCallbackError as exc:
            observe_oauth_login(provider=self.provider.name, outcome="failed")
            raise ProviderCallbackError(self._with_hint(exc.message)) from exc
        except LoginBridgeError:
            observe_oauth_login(provider=self.provider.name, outcome="failed")
            raise
        except Exception as exc:  # noqa: BLE001
            observe_oauth_login(provider=self.provider.name, outcome="failed")
            logger.exception("OAuth session setup failed for provider=%s", self.provider.name)
            raise ProviderCallbackError(self._with_hint("Authentication failed")) from exc

        observe_oauth_login(provider=self.provider.name, outcome="success")
        logger.info("auth.login.completed provider=%s", self.provider.name)
        return redirect_path

    def _accept(self, grant: ProviderGrant) -> str:
        try:
            envelope = OAuthStateEnvelope.decode(
                grant.state, trusted_origin=self.settings.trusted_origin
            )
            validate_state(self.state_store, envelope, prefix=self.provider.state_cookie_prefix)
            identity = self.provider.complete(grant)
            apply_login(self.session, identity)
        except Exception:
            # A provider session must not outlive a failed callback.
            self._sign_out(grant)
            raise
        return envelope.redirect_path

    def _handle_provider_error(self, exc: OAuthCallbackError, params: Mapping[str, str]) -> str:
        envelope = self._consume_quietly(exc.state)

        if params.get("error") == USER_CANCELLED_ERROR:
            observe_oauth_login(provider=self.provider.name, outcome="cancelled")
            return envelope.redirect_path if envelope is not None else DEFAULT_REDIRECT_PATH

        observe_oauth_login(provider=self.provider.name, outcome="failed")
        message = str(exc) or "Authentication failed"
        raise ProviderCallbackError(self._with_hint(message)) from exc

    def _consume_quietly(self, raw_state: str | None) -> OAuthStateEnvelope | None:
        # Cleans up the attempt's cookie; a missing cookie is not an error here.
        try:
            envelope = OAuthStateEnvelope.decode(
                raw_state, trusted_origin=self.settings.trusted_origin
            )
        except LoginBridgeError:
            return None
        self.state_store.consume(state_cookie_name(self.provider.state_cookie_prefix, envelope.id))
        return envelope

    def _sign_out(self, grant: ProviderGrant) -> None:
        try:
            self.provider.sign_out(grant)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Provider sign-out after failed callback errored for provider=%s: %s",
                self.provider.name,
                type(exc).__name__,
            )

    def _with_hint(self, message: str) -> str:
        return f"{message.rstrip('. ')}. {self.provider.retry_hint}"
