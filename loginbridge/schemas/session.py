from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from loginbridge.services.auth.identity import is_did


class PublicSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    did: str
    handle: str
    pds: str
    avatar: str | None = None
    relogin: bool | None = None

    @field_validator("did")
    @classmethod
    def _must_be_did(cls, v: str) -> str:
        if not is_did(v):
            raise ValueError("did must be a DID string")
        return v


class GitHubSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    access_token: str = Field(alias="accessToken", min_length=1)
    username: str = Field(min_length=1)


class GitHubSessionOut(BaseModel):
    username: str
