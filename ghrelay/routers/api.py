"""Management API.

Every route here lives under ``/api`` and requires ``?token=``
(enforced by ``TokenAuthMiddleware``).

- GET  /api/domains: relay pool with per-domain records
- GET|POST /api/update-domains: refresh the relay list
- GET  /api/health: on-demand health sweep
- GET  /api/clear-cache: drop cached results
- GET  /api/stats, /api/stats/reset: traffic statistics
- GET  /api/proxy: one resolved relay
- GET  /api/url: proxied URL for a resource
- GET  /api/download: single-relay download metadata
- GET  /api/multi-download: multi-relay chunk plan
- GET  /api/releases: release listing of a repository
- GET  /api/clone: accelerated clone command
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Query

from ghrelay.gateway.targets import build_proxied_url, parse_target, require_allowed
from ghrelay.integration.github import clone_command, with_proxied_urls
from ghrelay.middleware.error_handler import NoDomainAvailableError
from ghrelay.models.responses import ApiResponse

if TYPE_CHECKING:
    from ghrelay.services.container import RelayServices

logger = logging.getLogger(__name__)


def create_api_router(*, services: RelayServices) -> APIRouter:
    """Factory that creates the management router bound to ``services``."""

    api_router = APIRouter(prefix="/api", tags=["api"])
    settings = services.settings

    # ------------------------------------------------------------------
    # Pool management
    # ------------------------------------------------------------------

    @api_router.get("/domains")
    async def list_domains() -> dict:
        return ApiResponse.ok(
            {"strategy": services.selector.strategy.value, **services.pool.get_stats()}
        )

    @api_router.api_route("/update-domains", methods=["GET", "POST"])
    async def update_domains() -> dict:
        domains = await services.pool.refresh()
        return ApiResponse.ok(
            {"message": "Relay list updated", "count": len(domains), "domains": domains}
        )

    @api_router.get("/health")
    async def health_check() -> dict:
        report = await services.monitor.run_once()
        return ApiResponse.ok(report.to_dict())

    @api_router.get("/clear-cache")
    async def clear_cache() -> dict:
        services.cache.clear()
        return ApiResponse.ok({"message": "Cache cleared"})

    @api_router.get("/stats")
    async def get_stats() -> dict:
        return ApiResponse.ok(services.stats.snapshot())

    @api_router.get("/stats/reset")
    async def reset_stats() -> dict:
        services.stats.reset()
        return ApiResponse.ok({"message": "Statistics reset"})

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @api_router.get("/proxy")
    async def resolve_relay() -> dict:
        relay = await services.selector.select()
        return ApiResponse.ok({"relay": relay, "strategy": services.selector.strategy.value})

    @api_router.get("/url")
    async def proxied_url(url: str = Query(..., min_length=1)) -> dict:
        target = require_allowed(parse_target(url), settings.allowed_hosts)
        relay = await services.selector.select()
        return ApiResponse.ok(
            {
                "original_url": target.url,
                "proxied_url": build_proxied_url(relay, target.url),
                "relay": relay,
            }
        )

    @api_router.get("/download")
    async def download_info(url: str = Query(..., min_length=1)) -> dict:
        target = require_allowed(parse_target(url), settings.allowed_hosts)
        plan = await services.planner.describe(target.url)
        shard = plan.shards[0]
        return ApiResponse.ok(
            {
                "original_url": target.url,
                "proxied_url": shard.proxied_url,
                "relay": shard.domain,
                "size": plan.content_length,
                "content_type": plan.content_type,
                "recommended_shards": services.planner.recommended_shards(plan.content_length),
            }
        )

    @api_router.get("/multi-download")
    async def multi_download_info(
        url: str = Query(..., min_length=1),
        count: int | None = Query(None, ge=1, le=64),
    ) -> dict:
        target = require_allowed(parse_target(url), settings.allowed_hosts)
        plan = await services.planner.plan(target.url, count)
        return ApiResponse.ok(plan.to_dict())

    # ------------------------------------------------------------------
    # Repository helpers
    # ------------------------------------------------------------------

    @api_router.get("/releases")
    async def releases(repo: str = Query(..., min_length=1)) -> dict:
        listing = await services.github.get_releases(repo)
        try:
            relay = await services.selector.select()
        except NoDomainAvailableError:
            logger.warning("No relay available; releases listed without proxied URLs")
            relay = None
        return ApiResponse.ok(with_proxied_urls(listing, relay))

    @api_router.get("/clone")
    async def clone(repo: str = Query(..., min_length=1)) -> dict:
        relay = await services.selector.select()
        return ApiResponse.ok(clone_command(repo, relay))

    return api_router
