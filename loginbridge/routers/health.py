from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from loginbridge.core.config import Settings, get_settings
from loginbridge.core.crypto import derive_key
from loginbridge.core.errors import MisconfigurationError

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
def readyz(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    try:
        if not settings.session_secret_configured:
            raise MisconfigurationError("session secret missing")
        derive_key(settings.SESSION_SECRET)
    except MisconfigurationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="session secret not configured",
        ) from e
    return {"status": "ready"}
