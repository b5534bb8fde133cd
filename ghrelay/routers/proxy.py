"""Gateway catch-all route.

Matches ``/{protocol}://{host}/{path}`` for any method. Registered after all
other routers so it never shadows them.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request
from starlette.responses import Response

from ghrelay.middleware.error_handler import NotFoundError

if TYPE_CHECKING:
    from ghrelay.gateway.proxy import StreamingProxyGateway

_PROXIED_PATH = re.compile(r"^https?:/", re.I)

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_proxy_router(*, gateway: StreamingProxyGateway) -> APIRouter:
    proxy_router = APIRouter(tags=["proxy"])

    @proxy_router.api_route("/{target:path}", methods=PROXY_METHODS, include_in_schema=False)
    async def relay(target: str, request: Request) -> Response:
        if not _PROXIED_PATH.match(target):
            raise NotFoundError()
        return await gateway.forward(request, target)

    return proxy_router
