"""Request logging middleware.

Assigns (or propagates) an ``X-Request-ID``, logs each request once it has
been answered, and feeds the management-API counters of the stats collector.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

if TYPE_CHECKING:
    from ghrelay.stats.collector import StatsCollector

logger = logging.getLogger(__name__)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every request.

    ``/api`` requests are counted as ``api_requests``; those answered with a
    5xx status also count as ``errors``. Gateway traffic is accounted by the
    gateway itself, per relay.
    """

    def __init__(self, app, stats: StatsCollector | None = None) -> None:  # noqa: ANN001
        super().__init__(app)
        self._stats = stats

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        is_api = request.url.path.startswith("/api")

        if is_api and self._stats is not None:
            self._stats.increment("api_requests")

        start = time.monotonic()
        response: Response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)
        response.headers["X-Request-ID"] = request_id

        status = response.status_code
        if is_api and status >= 500 and self._stats is not None:
            self._stats.increment("errors")

        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            "%s %s %d %.1fms",
            request.method,
            request.url.path,
            status,
            duration_ms,
            extra={
                "request_id": request_id,
                "status_code": status,
                "duration_ms": duration_ms,
            },
        )
        return response
