from __future__ import annotations

from pydantic import BaseModel


class StarRequest(BaseModel):
    owner: str | None = None
    repo: str | None = None


class StarToggleResponse(BaseModel):
    starred: bool


class StarStatusResponse(BaseModel):
    starred: bool
    connected: bool
