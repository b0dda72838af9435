from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from loginbridge.core.config import Settings
from loginbridge.core.metrics import observe_identity_enrichment
from loginbridge.services.atproto.oauth import AtprotoSession
from loginbridge.services.auth.identity import AuthenticatedIdentity

logger = logging.getLogger("loginbridge.api")

RESOLVE_MINI_DOC_NSID = "com.bad-example.identity.resolveMiniDoc"
GET_RECORD_NSID = "com.atproto.repo.getRecord"
PROFILE_COLLECTION = "app.bsky.actor.profile"
HANDLE_NOT_AVAILABLE = "Not available"


class MiniDoc(BaseModel):
    model_config = ConfigDict(extra="ignore")

    did: str
    handle: str
    pds: str


class CidLink(BaseModel):
    link: str = Field(alias="$link", min_length=1)


class BlobRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(default="blob", alias="$type", pattern=r"^blob$")
    ref: CidLink
    mime_type: str = Field(alias="mimeType", pattern=r"^image/")
    size: int = Field(ge=0)


class ActorProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = Field(
        default=PROFILE_COLLECTION, alias="$type", pattern=r"^app\.bsky\.actor\.profile$"
    )
    display_name: str | None = Field(default=None, alias="displayName", max_length=640)
    description: str | None = Field(default=None, max_length=2560)
    avatar: BlobRef | None = None
    banner: BlobRef | None = None


@dataclass(frozen=True)
class Resolved:
    identity: AuthenticatedIdentity


@dataclass(frozen=True)
class Degraded:
    identity: AuthenticatedIdentity
    reason: str


EnrichmentResult = Resolved | Degraded


def resolve_mini_doc(client: httpx.Client, *, did: str, slingshot_host: str) -> MiniDoc | None:
    try:
        res = client.get(
            f"https://{slingshot_host}/xrpc/{RESOLVE_MINI_DOC_NSID}",
            params={"identifier": did},
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("Identity resolver request failed: %s", type(e).__name__)
        return None

    if res.status_code != 200:
        logger.warning("Identity resolver returned HTTP %s", res.status_code)
        return None

    try:
        doc = MiniDoc.model_validate(res.json())
    except (ValueError, ValidationError):
        logger.warning("Identity resolver returned an unexpected payload")
        return None

    if doc.did != did:
        logger.warning("Identity resolver answered for a different DID")
        return None
    return doc


def get_profile_record(client: httpx.Client, *, did: str, pds: str) -> object:
    res = client.get(
        f"{pds.rstrip('/')}/xrpc/{GET_RECORD_NSID}",
        params={"repo": did, "collection": PROFILE_COLLECTION, "rkey": "self"},
    )
    res.raise_for_status()
    return res.json().get("value")


def avatar_cdn_url(cdn_url: str, *, did: str, cid: str) -> str:
    return f"{cdn_url.rstrip('/')}/img/feed_thumbnail/plain/{did}/{cid}@jpeg"


def resolve_avatar(client: httpx.Client, *, did: str, pds: str, cdn_url: str) -> str | None:
    try:
        parts = urlsplit(pds)
    except ValueError:
        return None
    # Only https PDS endpoints are ever fetched.
    if parts.scheme != "https" or not parts.hostname:
        return None

    try:
        raw = get_profile_record(client, did=did, pds=pds)
        profile = ActorProfile.model_validate(raw)
    except (
        httpx.HTTPError,
        httpx.InvalidURL,
        ValueError,
        AttributeError,
        ValidationError,
    ) as e:
        logger.debug("Avatar lookup failed for %s: %s", did, type(e).__name__)
        return None

    if profile.avatar is None:
        return None
    return avatar_cdn_url(cdn_url, did=did, cid=profile.avatar.ref.link)


def enrich_identity(
    client: httpx.Client, *, session: AtprotoSession, settings: Settings
) -> EnrichmentResult:
    """Build the public identity for a freshly authenticated AT Protocol session.

    A resolver outage only degrades the result (handle "Not available", PDS taken
    from the token audience); it never fails the login.
    """
    did = session.did
    doc = resolve_mini_doc(client, did=did, slingshot_host=settings.SLINGSHOT_HOST)

    if doc is not None:
        avatar = resolve_avatar(client, did=did, pds=doc.pds, cdn_url=settings.BSKY_CDN_URL)
        observe_identity_enrichment(result="resolved")
        return Resolved(
            identity=AuthenticatedIdentity(
                provider_kind="federated",
                subject_id=did,
                handle=doc.handle,
                pds=doc.pds,
                avatar_url=avatar,
            )
        )

    reason = "resolver_unavailable"
    try:
        pds = session.get_token_info().aud
    except Exception as e:  # noqa: BLE001
        logger.warning("Token audience unavailable for %s: %s", did, type(e).__name__)
        pds = ""
        reason = "token_info_unavailable"

    avatar = None
    if pds:
        avatar = resolve_avatar(client, did=did, pds=pds, cdn_url=settings.BSKY_CDN_URL)
    observe_identity_enrichment(result="degraded")
    return Degraded(
        identity=AuthenticatedIdentity(
            provider_kind="federated",
            subject_id=did,
            handle=HANDLE_NOT_AVAILABLE,
            pds=pds,
            avatar_url=avatar,
        ),
        reason=reason,
    )
