"""Browser-side star button behaviour, as a client of the ``/stars`` API.

The displayed state flips immediately when the user toggles. The star counter
delta is the net change since the last refresh, so starring and then unstarring
shows no change. The server answer then wins: on success the state is
reconciled to what GitHub confirmed, on failure it reverts to the previous
state and the delta follows it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger("loginbridge.client")


@dataclass
class StarButtonState:
    starred: bool = False
    connected: bool = False
    delta: int = 0
    pending: bool = False


class StarToggleClient:
    def __init__(self, http: httpx.Client, *, owner: str, repo: str) -> None:
        self._http = http
        self.owner = owner
        self.repo = repo
        self.state = StarButtonState()
        self._loaded_starred = False

    def refresh(self) -> StarButtonState:
        try:
            res = self._http.get("/stars", params={"owner": self.owner, "repo": self.repo})
            res.raise_for_status()
            payload = res.json()
            self.state.starred = bool(payload["starred"])
            self.state.connected = bool(payload["connected"])
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.debug("Star status refresh failed: %s", type(e).__name__)
            self.state.starred = False
            self.state.connected = False
        self._loaded_starred = self.state.starred
        self.state.delta = 0
        return self.state

    def toggle(self) -> StarButtonState:
        if not self.state.connected or self.state.pending:
            return self.state

        previous = self.state.starred
        self.state.starred = not previous
        self._sync_delta()
        self.state.pending = True

        try:
            res = self._http.request(
                "DELETE" if previous else "PUT",
                "/stars",
                json={"owner": self.owner, "repo": self.repo},
            )
            res.raise_for_status()
            confirmed = bool(res.json()["starred"])
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.debug("Star toggle failed, reverting: %s", type(e).__name__)
            self.state.starred = previous
        else:
            self.state.starred = confirmed
        finally:
            self.state.pending = False

        self._sync_delta()
        return self.state

    def _sync_delta(self) -> None:
        self.state.delta = int(self.state.starred) - int(self._loaded_starred)
