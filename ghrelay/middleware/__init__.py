"""Middleware package: error hierarchy, token auth, and request logging."""

from ghrelay.middleware.auth import TokenAuthMiddleware
from ghrelay.middleware.error_handler import (
    AccessDeniedError,
    AuthenticationError,
    FetchError,
    InvalidTokenError,
    NoDomainAvailableError,
    NotFoundError,
    RelayError,
    UpstreamError,
    ValidationError,
    register_error_handlers,
)
from ghrelay.middleware.request_log import RequestLogMiddleware

__all__ = [
    "AccessDeniedError",
    "AuthenticationError",
    "FetchError",
    "InvalidTokenError",
    "NoDomainAvailableError",
    "NotFoundError",
    "RelayError",
    "RequestLogMiddleware",
    "TokenAuthMiddleware",
    "UpstreamError",
    "ValidationError",
    "register_error_handlers",
]
