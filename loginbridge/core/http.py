from __future__ import annotations

from collections.abc import Generator

import httpx

from loginbridge.core.config import get_settings


def get_http_client() -> Generator[httpx.Client, None, None]:
    """Outbound client for GitHub, the identity resolver and PDS lookups; overridden in tests."""
    settings = get_settings()
    with httpx.Client(
        timeout=httpx.Timeout(
            connect=3.0,
            read=settings.HTTP_TIMEOUT_SECONDS,
            write=5.0,
            pool=5.0,
        ),
        # PDS hosts come from third-party identity documents; do not chase their redirects.
        follow_redirects=False,
        transport=httpx.HTTPTransport(retries=1),
        headers={"User-Agent": settings.USER_AGENT},
    ) as client:
        yield client
