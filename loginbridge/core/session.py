"""Sealed-cookie server session.

The whole session document lives in one AES-GCM sealed cookie. Handlers read
``SessionHandle.data`` and change it only through ``SessionHandle.update`` with
merge-patch semantics: every key in the patch replaces the stored key, and a
key whose value is ``None`` is removed. The new document is written back as a
single ``Set-Cookie`` when ``apply`` is called on the outgoing response, so a
concurrent request never observes a half-applied patch.
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Mapping
from typing import Any

import orjson
from fastapi import Depends, Request, Response

from loginbridge.core.config import Settings, get_settings
from loginbridge.core.crypto import SealError, derive_key, seal, unseal
from loginbridge.core.errors import MissingSessionSecretError
from loginbridge.core.security import clear_cookie, set_cookie

logger = logging.getLogger("loginbridge.api")

SESSION_COOKIE_PATH = "/"


class SessionHandle:
    def __init__(
        self,
        *,
        settings: Settings,
        key: bytes,
        data: dict[str, Any],
        had_cookie: bool,
    ) -> None:
        self._settings = settings
        self._key = key
        self._data = data
        self._had_cookie = had_cookie
        self._dirty = False

    @property
    def data(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    @property
    def dirty(self) -> bool:
        return self._dirty

    def update(self, patch: Mapping[str, Any]) -> None:
        merged = dict(self._data)
        for field, value in patch.items():
            if value is None:
                merged.pop(field, None)
            else:
                merged[field] = copy.deepcopy(value)
        self._data = merged
        self._dirty = True

    def seal(self, *, now: float | None = None) -> str:
        issued_at = int(now if now is not None else time.time())
        payload = orjson.dumps({"d": self._data, "iat": issued_at}, option=orjson.OPT_SORT_KEYS)
        return seal(key=self._key, plaintext=payload, aad=self._aad())

    def apply(self, response: Response) -> None:
        if not self._dirty:
            return

        name = self._settings.SESSION_COOKIE_NAME
        if not self._data:
            if self._had_cookie:
                clear_cookie(response, self._settings, key=name, path=SESSION_COOKIE_PATH)
            return

        set_cookie(
            response,
            self._settings,
            key=name,
            value=self.seal(),
            path=SESSION_COOKIE_PATH,
            max_age=self._settings.SESSION_TTL_SECONDS,
        )

    def _aad(self) -> bytes:
        return self._settings.SESSION_COOKIE_NAME.encode("utf-8")


def open_session(
    cookies: Mapping[str, str], settings: Settings, *, now: float | None = None
) -> SessionHandle:
    if not settings.session_secret_configured:
        raise MissingSessionSecretError()

    key = derive_key(settings.SESSION_SECRET)
    raw = cookies.get(settings.SESSION_COOKIE_NAME)
    handle_args: dict[str, Any] = {"settings": settings, "key": key, "had_cookie": raw is not None}
    if not raw:
        return SessionHandle(data={}, **handle_args)

    try:
        plaintext = unseal(key=key, sealed=raw, aad=settings.SESSION_COOKIE_NAME.encode("utf-8"))
        payload = orjson.loads(plaintext)
    except (SealError, ValueError):
        # Tampered, rotated secret, or garbage: start over with an empty session.
        logger.info("Discarding unreadable session cookie")
        return SessionHandle(data={}, **handle_args)

    issued_at = payload.get("iat") if isinstance(payload, dict) else None
    data = payload.get("d") if isinstance(payload, dict) else None
    current = now if now is not None else time.time()
    if (
        not isinstance(issued_at, int)
        or not isinstance(data, dict)
        or issued_at + settings.SESSION_TTL_SECONDS < current
    ):
        return SessionHandle(data={}, **handle_args)

    return SessionHandle(data=data, **handle_args)


def get_server_session(
    request: Request, settings: Settings = Depends(get_settings)
) -> SessionHandle:
    return open_session(request.cookies, settings)
