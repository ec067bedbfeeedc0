"""
HTTP middleware: request ids, security headers, access logging and a body
size cap. Errors produced here use the same JSON body as the exception
handlers in ``musiccollab.core.errors``.
"""

import logging
import re
import time
import uuid
from typing import Callable
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from musiccollab.config import settings
from musiccollab.core.errors import ValidationFailed, error_body


logger = logging.getLogger("musiccollab.requests")

QUIET_PATHS = {"/", "/health", "/docs", "/openapi.json"}

# Responses under these prefixes carry one user's data and must not be cached
PRIVATE_PREFIXES = tuple(
    f"{settings.API_V1_PREFIX}/{section}" for section in ("auth", "profiles", "matching")
)

_REQUEST_ID = re.compile(r"^[A-Za-z0-9-]{1,64}$")


def get_client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


def get_request_id(request: Request) -> str:
    """Reuse the client's X-Request-ID when it is well formed, else mint one."""
    incoming = request.headers.get("X-Request-ID", "")
    if _REQUEST_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex[:12]


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and hardens every response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = get_request_id(request)
        request.state.request_id = request_id

        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        if request.url.path.startswith(PRIVATE_PREFIXES):
            response.headers["Cache-Control"] = "no-store, private"
            response.headers["Pragma"] = "no-cache"

        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One access log line per API request; server errors log at WARNING."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        if request.url.path in QUIET_PATHS:
            return response

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "[%s] %s %s -> %s (%.1fms)",
            getattr(request.state, "request_id", "-"),
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "client_ip": get_client_ip(request),
                "user_agent": request.headers.get("User-Agent", "")[:100],
            },
        )
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects bodies over 10 MB before they reach a route."""

    MAX_BODY_SIZE = 10 * 1024 * 1024

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        content_length = request.headers.get("Content-Length", "")

        if content_length.isdigit() and int(content_length) > self.MAX_BODY_SIZE:
            return JSONResponse(
                status_code=413,
                content=error_body(
                    ValidationFailed.kind,
                    "Request body too large. Maximum size is 10MB.",
                    False,
                ),
            )

        return await call_next(request)
