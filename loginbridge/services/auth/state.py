"""Ephemeral OAuth state tokens.

Each login attempt gets a random id. The id travels to the provider inside the
``state`` envelope, and presence of a short-lived cookie named after the id
proves that the callback belongs to the browser that started the attempt. The
cookie value is a constant marker; only its existence is checked. Using the id
in the cookie name lets several attempts (tabs) coexist without collisions.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Protocol

from fastapi import Response
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from loginbridge.core.config import Settings
from loginbridge.core.errors import InvalidInputError, MissingAuthStateError
from loginbridge.core.security import clear_cookie, generate_random_hex_string, set_cookie
from loginbridge.services.auth.redirects import sanitize_redirect

logger = logging.getLogger("loginbridge.api")

STATE_COOKIE_MARKER = "1"
STATE_ID_BYTES = 16


class StateStore(Protocol):
    def put(self, key: str, ttl_seconds: int) -> None: ...

    def consume(self, key: str) -> bool: ...


class CookieStateStore:
    """StateStore backed by per-key browser cookies scoped to one route path."""

    def __init__(self, cookies: Mapping[str, str], settings: Settings, *, path: str) -> None:
        self._present = {k for k, v in cookies.items() if v == STATE_COOKIE_MARKER}
        self._settings = settings
        self._path = path
        self._pending: dict[str, int | None] = {}

    def put(self, key: str, ttl_seconds: int) -> None:
        self._present.add(key)
        self._pending[key] = ttl_seconds

    def consume(self, key: str) -> bool:
        if key not in self._present:
            return False
        self._present.discard(key)
        self._pending[key] = None
        return True

    def apply(self, response: Response) -> None:
        for key, ttl in self._pending.items():
            if ttl is None:
                clear_cookie(response, self._settings, key=key, path=self._path)
            else:
                set_cookie(
                    response,
                    self._settings,
                    key=key,
                    value=STATE_COOKIE_MARKER,
                    path=self._path,
                    max_age=ttl,
                )
        self._pending.clear()


class OAuthStateData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    redirect_path: str = Field(alias="redirectPath")


class OAuthStateEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: OAuthStateData
    id: str = Field(pattern=r"^[0-9a-f]{32}$")

    @property
    def redirect_path(self) -> str:
        return self.data.redirect_path

    def encode(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def decode(cls, raw: str | None, *, trusted_origin: str) -> OAuthStateEnvelope:
        if not raw:
            raise MissingAuthStateError("Missing state parameter")
        try:
            envelope = cls.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidInputError("Invalid authentication state. Please try again.") from e

        # Re-check on the way back in; the provider only echoes what it was given.
        safe_path = sanitize_redirect(envelope.redirect_path, trusted_origin)
        if safe_path != envelope.redirect_path:
            return cls(data=OAuthStateData(redirect_path=safe_path), id=envelope.id)
        return envelope


def state_cookie_name(prefix: str, state_id: str) -> str:
    return f"{prefix}_{state_id}"


def issue_state(
    store: StateStore, *, prefix: str, redirect_path: str, ttl_seconds: int
) -> OAuthStateEnvelope:
    state_id = generate_random_hex_string(STATE_ID_BYTES)
    store.put(state_cookie_name(prefix, state_id), ttl_seconds)
    return OAuthStateEnvelope(data=OAuthStateData(redirect_path=redirect_path), id=state_id)


def validate_state(store: StateStore, envelope: OAuthStateEnvelope, *, prefix: str) -> None:
    if not store.consume(state_cookie_name(prefix, envelope.id)):
        logger.info("OAuth state cookie missing for prefix=%s", prefix)
        raise MissingAuthStateError()
