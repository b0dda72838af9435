from __future__ import annotations

import json
import logging
import re
import threading
import time
from contextvars import ContextVar
from dataclasses import dataclass, field

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from loginbridge.core.config import Settings
from loginbridge.core.security import new_random_token

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
logger = logging.getLogger("loginbridge.api")

AUTH_PATH_PREFIX = "/auth/"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


@dataclass
class RateLimiter:
    """Fixed-window request counter per key."""

    max_requests: int
    window_seconds: int = 60
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _windows: dict[str, tuple[int, int]] = field(default_factory=dict)
    _current_window: int | None = None

    def allow(self, key: str, *, now_ts: float) -> bool:
        window = int(now_ts // self.window_seconds)
        with self._lock:
            if window != self._current_window:
                self._prune(window)
                self._current_window = window
            started, count = self._windows.get(key, (window, 0))
            if started != window:
                count = 0
            if count >= self.max_requests:
                return False
            self._windows[key] = (window, count + 1)
            return True

    def retry_after(self, *, now_ts: float) -> int:
        return max(1, self.window_seconds - int(now_ts % self.window_seconds))

    def _prune(self, window: int) -> None:
        for key in [k for k, (w, _) in self._windows.items() if w != window]:
            del self._windows[key]


def build_request_id(request: Request, *, header_name: str) -> str:
    incoming = (request.headers.get(header_name) or "").strip()
    # Echoed into logs and response headers; anything unexpected gets replaced.
    if _REQUEST_ID_RE.match(incoming):
        return incoming
    return new_random_token(nbytes=18)


def apply_security_headers(response: Response, *, path: str, settings: Settings) -> None:
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Content-Security-Policy", settings.CONTENT_SECURITY_POLICY)
    if path.startswith(AUTH_PATH_PREFIX):
        # Callback URLs carry the authorization code and state.
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers.setdefault("Cache-Control", "no-store")
    else:
        response.headers.setdefault("Referrer-Policy", "same-origin")


def rate_limit_key(request: Request) -> str:
    forwarded_for = (request.headers.get("x-forwarded-for") or "").strip()
    if forwarded_for:
        ip = forwarded_for.split(",", 1)[0].strip()
    else:
        ip = request.client.host if request.client else "unknown"
    # Auth routes are counted separately from the rest of the API.
    scope = "auth" if request.url.path.startswith(AUTH_PATH_PREFIX) else "api"
    return f"{scope}:{ip}"


def rate_limit_response(*, retry_after: int) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"statusCode": 429, "message": "Rate limit exceeded"},
        headers={"Retry-After": str(retry_after)},
    )


def log_request_completion(
    *,
    request_id: str,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
    rate_limited: bool,
) -> None:
    # Path only: query strings on auth routes hold codes and state.
    logger.info(
        json.dumps(
            {
                "event": "http.request.completed",
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "rate_limited": rate_limited,
            },
            separators=(",", ":"),
            sort_keys=True,
        )
    )


def now_ts() -> float:
    return time.time()
