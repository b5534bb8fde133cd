"""Global error hierarchy and FastAPI exception handlers.

All relay-specific errors extend RelayError. The FastAPI exception handlers
catch these errors (plus Pydantic's RequestValidationError and unhandled exceptions)
and return a consistent JSON envelope: { success, data, error, meta }.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class RelayError(Exception):
    """Base error for all relay-specific errors."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class ValidationError(RelayError):
    """Invalid query parameters or payload, with field-level details."""

    status_code = 422
    message = "Validation error"


class AuthenticationError(RelayError):
    """Missing management token."""

    status_code = 401
    message = "Missing authentication token"


class InvalidTokenError(RelayError):
    """Management token supplied but not accepted."""

    status_code = 403
    message = "Invalid authentication token"


class FetchError(RelayError):
    """Remote relay domain list unreachable or empty."""

    status_code = 502
    message = "Failed to fetch relay domain list"


class NoDomainAvailableError(RelayError):
    """Relay pool is empty at selection time."""

    status_code = 503
    message = "No relay domain available"


class AccessDeniedError(RelayError):
    """Target host is not on the allow-list."""

    status_code = 403
    message = "Only GitHub resources can be proxied"


class UpstreamError(RelayError):
    """Relay request failed without a usable upstream response."""

    status_code = 500
    message = "Proxy request failed"


class NotFoundError(RelayError):
    """Requested entity does not exist."""

    status_code = 404
    message = "Resource not found"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _envelope(
    status_code: int,
    error: str,
    meta: dict | None = None,
) -> JSONResponse:
    """Build a JSON envelope error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": error,
            "meta": meta,
        },
    )


async def _relay_error_handler(_request: Request, exc: RelayError) -> JSONResponse:
    """Handle RelayError subclasses."""
    meta = exc.details if exc.details else None
    return _envelope(exc.status_code, exc.message, meta=meta)


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI / Pydantic RequestValidationError (422)."""
    field_errors = [
        {
            "field": " -> ".join(str(loc) for loc in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    return _envelope(
        status_code=422,
        error="Validation error",
        meta={"fields": field_errors},
    )


async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions: log the traceback and return a generic 500."""
    logger.error(
        "Unhandled exception: %s\n%s",
        exc,
        traceback.format_exc(),
    )
    return _envelope(status_code=500, error="Internal server error")


# ---------------------------------------------------------------------------
# Registration helper
# ---------------------------------------------------------------------------


def register_error_handlers(app: FastAPI) -> None:
    """Wire up all exception handlers on the FastAPI application."""
    app.add_exception_handler(RelayError, _relay_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)  # type: ignore[arg-type]
