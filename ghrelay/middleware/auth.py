"""Management token authentication middleware.

Validates the ``token`` query parameter against the configured API token for
every ``/api`` path. The streaming gateway, ``/health`` and ``/config.js``
are public.

Missing token → 401, wrong token → 403. The supplied value is never logged.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ghrelay.middleware.error_handler import (
    AuthenticationError,
    InvalidTokenError,
    _envelope,
)

logger = logging.getLogger(__name__)

# Path prefix that requires a token.
_PROTECTED_PREFIX = "/api"


def _is_protected(path: str) -> bool:
    return path == _PROTECTED_PREFIX or path.startswith(_PROTECTED_PREFIX + "/")


class TokenAuthMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that enforces ``?token=`` authentication on the management API.

    Uses constant-time comparison (``hmac.compare_digest``) so response timing
    does not reveal how much of the token matched.
    """

    def __init__(self, app, api_token: str) -> None:  # noqa: ANN001
        super().__init__(app)
        self._api_token = api_token

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not _is_protected(request.url.path):
            return await call_next(request)

        provided = request.query_params.get("token")
        source_ip = request.client.host if request.client else "unknown"

        if not provided:
            logger.warning(
                "API request without token",
                extra={
                    "event": "auth_failure",
                    "reason": "missing_token",
                    "source_ip": source_ip,
                    "path": request.url.path,
                },
            )
            return _envelope(
                status_code=AuthenticationError.status_code,
                error=AuthenticationError.message,
            )

        if not hmac.compare_digest(provided.encode(), self._api_token.encode()):
            logger.warning(
                "API request with invalid token",
                extra={
                    "event": "auth_failure",
                    "reason": "invalid_token",
                    "source_ip": source_ip,
                    "path": request.url.path,
                },
            )
            return _envelope(
                status_code=InvalidTokenError.status_code,
                error=InvalidTokenError.message,
            )

        return await call_next(request)
