from __future__ import annotations

import re
from urllib.parse import SplitResult, urljoin, urlsplit

DEFAULT_REDIRECT_PATH = "/"

_DEFAULT_PORTS = {"http": 80, "https": 443}
_TAB_OR_NEWLINE = re.compile(r"[\t\n\r]")
_LEADING_SLASHES = re.compile(r"^/{2,}")


def origin_of(parts: SplitResult) -> str | None:
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if scheme not in _DEFAULT_PORTS or not host:
        return None
    port = parts.port  # raises ValueError on a malformed port
    if port is None or port == _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def sanitize_redirect(candidate: str | None, trusted_origin: str) -> str:
    """Resolve ``candidate`` against ``trusted_origin`` and keep only path, query and fragment.

    Anything that resolves to a different origin, or cannot be parsed, collapses
    to ``/`` so the result can never send the browser off-site.
    """
    try:
        base = urlsplit(trusted_origin)
        expected = origin_of(base)
        if expected is None:
            return DEFAULT_REDIRECT_PATH

        # Browsers strip tab/newline and treat "\" like "/" in http(s) URLs.
        raw = _TAB_OR_NEWLINE.sub("", (candidate or DEFAULT_REDIRECT_PATH).strip())
        raw = raw.replace("\\", "/") or DEFAULT_REDIRECT_PATH

        resolved = urlsplit(urljoin(f"{expected}/", raw))
        if origin_of(resolved) != expected:
            return DEFAULT_REDIRECT_PATH
    except ValueError:
        return DEFAULT_REDIRECT_PATH

    # "//host" would be read as protocol-relative by the browser.
    path = _LEADING_SLASHES.sub("/", resolved.path or DEFAULT_REDIRECT_PATH)
    if not path.startswith("/"):
        path = f"/{path}"
    query = f"?{resolved.query}" if resolved.query else ""
    fragment = f"#{resolved.fragment}" if resolved.fragment else ""
    return f"{path}{query}{fragment}"
