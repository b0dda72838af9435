from __future__ import annotations

import os
import sys
from urllib.parse import parse_qs, urlsplit

import httpx


def _assert_ok(response: httpx.Response, *, label: str) -> None:
    if response.status_code >= 400:
        raise RuntimeError(f"{label} failed: HTTP {response.status_code} body={response.text}")


def _assert_redirect(response: httpx.Response, *, label: str) -> str:
    if response.status_code != 302:
        raise RuntimeError(f"{label} failed: HTTP {response.status_code} body={response.text}")
    return response.headers["location"]


def main() -> None:
    base_url = os.environ.get("API_BASE_URL", "http://localhost:8000")
    handle = os.environ.get("SMOKE_HANDLE", "")

    with httpx.Client(base_url=base_url, timeout=20.0, follow_redirects=False) as client:
        health = client.get("/healthz")
        _assert_ok(health, label="GET /healthz")
        print("ok: GET /healthz")

        ready = client.get("/readyz")
        _assert_ok(ready, label="GET /readyz")
        print("ok: GET /readyz")

        public = client.get("/auth/federated/session")
        _assert_ok(public, label="GET /auth/federated/session")
        print("ok: GET /auth/federated/session")

        github = client.get("/auth/classic/session")
        _assert_ok(github, label="GET /auth/classic/session")
        print("ok: GET /auth/classic/session")

        classic = client.get("/auth/classic", params={"returnTo": "/"})
        location = _assert_redirect(classic, label="GET /auth/classic")
        if "state" not in parse_qs(urlsplit(location).query):
            raise RuntimeError("GET /auth/classic redirect carries no state")
        print("ok: GET /auth/classic")

        if handle:
            federated = client.get("/auth/federated", params={"handle": handle, "returnTo": "/"})
            _assert_redirect(federated, label="GET /auth/federated")
            print("ok: GET /auth/federated")

        stars = client.get("/stars", params={"owner": "octocat", "repo": "hello-world"})
        _assert_ok(stars, label="GET /stars")
        print(f"smoke complete: stars={stars.json()}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # noqa: BLE001
        print(f"smoke failed: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
