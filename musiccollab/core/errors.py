"""
Error kinds surfaced by the API.

Every error raised by the core carries a machine-readable ``kind`` and an HTTP
status. The handlers registered in ``register_exception_handlers`` turn them
into ``{"detail": ..., "error": ..., "retryable": ...}`` responses so that no
request failure crashes the process.
"""

import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


logger = logging.getLogger(__name__)


class MusicCollabError(Exception):
    """Base class for all expected request failures."""

    kind = "unknown"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = False
    default_message = "Something went wrong."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(MusicCollabError):
    kind = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Missing or invalid credentials."


class TargetNotFound(MusicCollabError):
    kind = "target_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Target user not found."


class ProfileNotFound(TargetNotFound):
    """Raised by the profile store when an id does not resolve."""
    default_message = "Profile not found."


class AlreadyDecided(MusicCollabError):
    kind = "already_decided"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Already swiped on this user."


class InvalidAction(MusicCollabError):
    kind = "invalid_action"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Action must be "like" or "pass".'


class ValidationFailed(MusicCollabError):
    kind = "validation_failed"
    status_code = 422
    default_message = "Profile validation failed."


class StorageConflict(MusicCollabError):
    kind = "storage_conflict"
    status_code = status.HTTP_409_CONFLICT
    retryable = True
    default_message = "Match could not be processed, try again."


class RateLimited(MusicCollabError):
    kind = "rate_limited"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    retryable = True
    default_message = "Too many requests."


def error_body(kind: str, message: str, retryable: bool) -> dict:
    return {"detail": message, "error": kind, "retryable": retryable}


async def musiccollab_error_handler(request: Request, exc: MusicCollabError) -> JSONResponse:
    headers = None
    if isinstance(exc, Unauthenticated):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.kind, exc.message, exc.retryable),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Keep pydantic's per-field errors so clients can highlight form fields
    body = error_body(ValidationFailed.kind, "Request validation failed.", False)
    body["errors"] = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=422, content=body)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "N/A")
    logger.exception("Unhandled error on %s %s (request %s)", request.method, request.url.path, request_id)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(MusicCollabError.kind, MusicCollabError.default_message, True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the structured error handlers to the application."""
    app.add_exception_handler(MusicCollabError, musiccollab_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
