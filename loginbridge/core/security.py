from __future__ import annotations

import base64
import os
import secrets
from typing import Any

from fastapi import Response

from loginbridge.core.config import Settings


def new_random_token(*, nbytes: int = 32) -> str:
    raw = os.urandom(nbytes)
    # URL-safe base64 without padding to keep cookie/header compact.
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_random_hex_string(nbytes: int = 16) -> str:
    return secrets.token_hex(nbytes)


def cookie_options(settings: Settings, *, path: str) -> dict[str, Any]:
    return {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": settings.COOKIE_SAMESITE,
        "domain": settings.COOKIE_DOMAIN,
        "path": path,
    }


def set_cookie(
    response: Response, settings: Settings, *, key: str, value: str, path: str, max_age: int
) -> None:
    response.set_cookie(
        key=key, value=value, max_age=max_age, **cookie_options(settings, path=path)
    )


def clear_cookie(response: Response, settings: Settings, *, key: str, path: str) -> None:
    response.delete_cookie(key=key, **cookie_options(settings, path=path))
