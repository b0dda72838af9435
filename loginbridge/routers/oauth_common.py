from __future__ import annotations

from collections.abc import Callable

from fastapi import Response, status
from fastapi.responses import RedirectResponse

from loginbridge.core.errors import LoginBridgeError, error_response
from loginbridge.core.session import SessionHandle
from loginbridge.services.auth.state import CookieStateStore


def finish_oauth_step(
    step: Callable[[], str], *, store: CookieStateStore, session: SessionHandle
) -> Response:
    """Run an authorize/callback step and turn its outcome into a redirect or JSON error.

    State cookie changes are written in both cases so a failed callback still
    clears the attempt's cookie.
    """
    try:
        location = step()
    except LoginBridgeError as exc:
        response: Response = error_response(exc)
    else:
        response = RedirectResponse(url=location, status_code=status.HTTP_302_FOUND)
        session.apply(response)

    store.apply(response)
    response.headers["Cache-Control"] = "no-store"
    return response
