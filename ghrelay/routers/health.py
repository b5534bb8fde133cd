"""Public health and frontend-config endpoints.

These endpoints do NOT require a token.
- GET /health: pool summary and the last sweep, without probing
- GET /config.js: public configuration for the web frontend
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastapi import APIRouter, Response

from ghrelay.models.responses import ApiResponse

if TYPE_CHECKING:
    from ghrelay.services.container import RelayServices


def create_health_router(*, services: RelayServices) -> APIRouter:
    """Factory that creates the public router bound to ``services``."""

    health_router = APIRouter(tags=["health"])

    @health_router.get("/health")
    async def health(response: Response) -> dict:
        pool_stats = services.pool.get_stats()
        is_ready = pool_stats["total"] > 0
        if not is_ready:
            response.status_code = 503

        return ApiResponse(
            success=is_ready,
            data={
                "status": "healthy" if is_ready else "no_relays",
                "strategy": services.selector.strategy.value,
                "pool": {
                    "total": pool_stats["total"],
                    "healthy": pool_stats["healthy"],
                    "unhealthy": pool_stats["unhealthy"],
                },
                "monitor": services.monitor.get_stats(),
            },
            error=None if is_ready else "Relay pool is empty",
        ).model_dump(mode="json")

    @health_router.get("/config.js", include_in_schema=False)
    async def frontend_config() -> Response:
        settings = services.settings
        config = {
            "PROXY_STRATEGY": settings.proxy_strategy.value,
            "ENABLE_MULTI_PROXY": settings.enable_multi_proxy,
            "SMALL_FILE_THRESHOLD": settings.small_file_threshold_mb,
            "MEDIUM_FILE_THRESHOLD": settings.medium_file_threshold_mb,
            "LARGE_FILE_THRESHOLD": settings.large_file_threshold_mb,
        }
        return Response(
            content=f"window.CONFIG = {json.dumps(config, indent=2)};",
            media_type="application/javascript",
        )

    return health_router
