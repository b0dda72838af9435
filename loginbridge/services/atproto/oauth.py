"""Narrow interface to the AT Protocol OAuth client.

Token exchange, DPoP and signature checks are done by the client library
(installed on ``app.state.atproto_oauth_client`` at startup). This module only
describes the calls the login flow makes on it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from fastapi import Request

from loginbridge.core.errors import UnconfiguredProviderError


class OAuthCallbackError(Exception):
    """Raised by the client when the provider redirect carries an error.

    ``state`` is the raw state string the flow handed to ``authorize``, when the
    provider echoed it back.
    """

    def __init__(
        self, message: str, *, state: str | None = None, params: Mapping[str, str] | None = None
    ) -> None:
        super().__init__(message)
        self.state = state
        self.params = dict(params or {})


@dataclass(frozen=True)
class TokenInfo:
    aud: str
    sub: str | None = None
    scope: str | None = None


class AtprotoSession(Protocol):
    @property
    def did(self) -> str: ...

    def get_token_info(self) -> TokenInfo: ...

    def sign_out(self) -> None: ...


@dataclass(frozen=True)
class CallbackResult:
    session: AtprotoSession
    state: str | None


class AtprotoOAuthClient(Protocol):
    def authorize(
        self, identifier: str, *, scope: str, state: str, prompt: str | None = None
    ) -> str: ...

    def callback(self, params: Mapping[str, str]) -> CallbackResult: ...

    def restore(self, did: str) -> AtprotoSession: ...


def get_atproto_oauth_client(request: Request) -> AtprotoOAuthClient:
    client = getattr(request.app.state, "atproto_oauth_client", None)
    if client is None:
        raise UnconfiguredProviderError("AT Protocol OAuth client is not configured.")
    return client
