from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

ProviderKind = Literal["federated", "classic"]

_HANDLE_RE = re.compile(
    r"^([a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+"
    r"[a-zA-Z]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$"
)
_DID_RE = re.compile(r"^did:[a-z]+:[a-zA-Z0-9._:%-]*[a-zA-Z0-9._-]$")

MAX_HANDLE_LENGTH = 253
MAX_DID_LENGTH = 2048


@dataclass(frozen=True)
class AuthenticatedIdentity:
    provider_kind: ProviderKind
    subject_id: str
    handle: str | None = None
    avatar_url: str | None = None
    access_token: str | None = None
    # Federated only: host of the subject's personal data server.
    pds: str | None = None


def is_did(value: str) -> bool:
    return len(value) <= MAX_DID_LENGTH and _DID_RE.match(value) is not None


def is_handle(value: str) -> bool:
    return len(value) <= MAX_HANDLE_LENGTH and _HANDLE_RE.match(value) is not None


def is_at_identifier(value: str) -> bool:
    return is_did(value) or is_handle(value)


def is_valid_federated_identifier(value: object) -> bool:
    # Either an entryway/PDS URL or an account handle/DID.
    if not isinstance(value, str) or not value:
        return False
    return value.startswith("https://") or is_at_identifier(value)
