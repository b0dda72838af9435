from __future__ import annotations

import logging
from typing import cast

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger("loginbridge.api")

UNSET_SESSION_SECRET_MESSAGE = (
    "SESSION_SECRET is not set or is shorter than 32 characters. "
    "Configure it before using authentication."
)


class LoginBridgeError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class MisconfigurationError(LoginBridgeError):
    default_message = "Server is misconfigured"


class MissingSessionSecretError(MisconfigurationError):
    default_message = UNSET_SESSION_SECRET_MESSAGE


class UnconfiguredProviderError(MisconfigurationError):
    default_message = "OAuth provider is not configured."


class InvalidInputError(LoginBridgeError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class MissingAuthStateError(LoginBridgeError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Missing authentication state. Please enable cookies and try again."


class ProviderCallbackError(LoginBridgeError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication failed"


class UnauthorizedError(LoginBridgeError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class UpstreamServiceError(LoginBridgeError):
    default_message = "Upstream service request failed"


def _error_body(status_code: int, message: str) -> dict[str, object]:
    return {"statusCode": status_code, "message": message}


def error_response(exc: LoginBridgeError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.message),
        headers={"Cache-Control": "no-store"},
    )


def loginbridge_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    return error_response(cast(LoginBridgeError, exc))


def http_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    exc = cast(HTTPException, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


def validation_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    exc = cast(RequestValidationError, exc)
    fields = sorted({".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()})
    message = "Invalid request" + (f": {', '.join(fields)}" if fields else "")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(status.HTTP_400_BAD_REQUEST, message),
    )


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LoginBridgeError, loginbridge_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
