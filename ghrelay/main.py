"""FastAPI application entry point with lifespan management.

Startup: configure logging, load the relay pool, start the health monitor
and the cache sweep.
Shutdown: stop background tasks and close the shared HTTP client.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ghrelay.config.settings import RelaySettings
from ghrelay.logging_config import configure_logging
from ghrelay.middleware.auth import TokenAuthMiddleware
from ghrelay.middleware.error_handler import register_error_handlers
from ghrelay.middleware.request_log import RequestLogMiddleware
from ghrelay.routers.api import create_api_router
from ghrelay.routers.health import create_health_router
from ghrelay.routers.proxy import create_proxy_router
from ghrelay.services.container import RelayServices, build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown logic."""
    services: RelayServices = app.state.services
    configure_logging(services.settings.log_level)
    logger.info(
        "Starting relay gateway on port %d (strategy=%s)",
        services.settings.port,
        services.settings.proxy_strategy.value,
    )

    await services.start()
    logger.info("Relay gateway started with %d relays", len(services.pool))

    yield

    logger.info("Shutting down relay gateway…")
    await services.stop()
    logger.info("Relay gateway shut down")


def create_app(
    settings: RelaySettings | None = None,
    services: RelayServices | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Loads ``RelaySettings`` eagerly so that a missing ``GHRELAY_API_TOKEN``
    or an invalid value fails at startup instead of on the first request.
    """
    if services is None:
        settings = settings or RelaySettings()  # type: ignore[call-arg]
        services = build_services(settings)
    settings = services.settings

    app = FastAPI(
        title="GitHub Relay Gateway",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    register_error_handlers(app)

    # Starlette applies middleware in reverse order of add_middleware calls:
    # request log → auth → routes
    app.add_middleware(TokenAuthMiddleware, api_token=settings.api_token)
    app.add_middleware(RequestLogMiddleware, stats=services.stats)

    app.include_router(create_health_router(services=services))
    app.include_router(create_api_router(services=services))
    # Catch-all: must stay last.
    app.include_router(create_proxy_router(gateway=services.gateway))

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    settings = RelaySettings()  # type: ignore[call-arg]
    uvicorn.run(
        "ghrelay.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
