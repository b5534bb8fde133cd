"""Component wiring.

``build_services`` creates every component from ``RelaySettings`` around one
shared ``httpx.AsyncClient``; ``start``/``stop`` run the boot sequence and
the background schedules.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from ghrelay.cache.result_cache import ResultCache
from ghrelay.config.settings import RelaySettings
from ghrelay.gateway.proxy import StreamingProxyGateway
from ghrelay.integration.github import GitHubClient
from ghrelay.middleware.error_handler import FetchError
from ghrelay.relay.chunks import ChunkPlanner
from ghrelay.relay.health import HealthMonitor
from ghrelay.relay.pool import DomainPool
from ghrelay.relay.prober import SpeedProber
from ghrelay.relay.selector import RelaySelector
from ghrelay.services.scheduler import PeriodicTask
from ghrelay.stats.collector import StatsCollector

logger = logging.getLogger(__name__)


@dataclass
class RelayServices:
    settings: RelaySettings
    http_client: httpx.AsyncClient
    cache: ResultCache
    stats: StatsCollector
    pool: DomainPool
    prober: SpeedProber
    selector: RelaySelector
    monitor: HealthMonitor
    planner: ChunkPlanner
    gateway: StreamingProxyGateway
    github: GitHubClient
    cache_sweeper: PeriodicTask = field(init=False)

    def __post_init__(self) -> None:
        self.cache_sweeper = PeriodicTask(
            "result-cache-sweep",
            self.settings.cache_sweep_interval_seconds,
            self.cache.purge_expired,
        )

    async def start(self) -> None:
        """Load the relay pool and start the background schedules.

        A pool that cannot be loaded leaves the service up with an empty
        pool; selections fail with ``NoDomainAvailableError`` until a refresh
        succeeds.
        """
        try:
            await self.pool.load()
        except FetchError as exc:
            logger.error("Relay pool could not be loaded: %s", exc.message)

        self.cache_sweeper.start()
        if self.settings.health_check_enabled:
            self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()
        await self.cache_sweeper.stop()
        await self.http_client.aclose()


def build_services(
    settings: RelaySettings,
    http_client: httpx.AsyncClient | None = None,
) -> RelayServices:
    """Create all components for ``settings``."""
    if http_client is None:
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                settings.proxy_read_timeout_seconds,
                connect=settings.proxy_connect_timeout_seconds,
            ),
            max_redirects=settings.max_redirects,
        )

    cache = ResultCache(default_ttl_seconds=settings.cache_ttl_seconds)
    stats = StatsCollector()
    pool = DomainPool(
        http_client=http_client,
        domains_url=settings.proxy_domains_url,
        domains_file=settings.proxy_domains_file,
    )
    prober = SpeedProber(
        http_client=http_client,
        test_url=settings.probe_test_url,
        timeout_seconds=settings.probe_timeout_seconds,
        user_agent=settings.user_agent,
    )
    selector = RelaySelector(
        pool=pool,
        prober=prober,
        cache=cache,
        strategy=settings.proxy_strategy,
        fastest_ttl_seconds=settings.fastest_cache_ttl_seconds,
    )
    monitor = HealthMonitor(
        pool=pool,
        prober=prober,
        interval_seconds=settings.health_check_interval_seconds,
        healthy_fraction_threshold=settings.healthy_fraction_threshold,
    )
    planner = ChunkPlanner(
        http_client=http_client,
        pool=pool,
        selector=selector,
        head_timeout_seconds=settings.proxy_connect_timeout_seconds,
        user_agent=settings.user_agent,
        enable_multi_proxy=settings.enable_multi_proxy,
        small_mb=settings.small_file_threshold_mb,
        medium_mb=settings.medium_file_threshold_mb,
        large_mb=settings.large_file_threshold_mb,
        default_shard_count=settings.default_shard_count,
    )
    gateway = StreamingProxyGateway(
        http_client=http_client,
        selector=selector,
        stats=stats,
        allowed_hosts=settings.allowed_hosts,
        connect_timeout_seconds=settings.proxy_connect_timeout_seconds,
        read_timeout_seconds=settings.proxy_read_timeout_seconds,
    )
    github = GitHubClient(
        http_client=http_client,
        cache=cache,
        api_url=settings.github_api_url,
        cache_ttl_seconds=settings.cache_ttl_seconds,
        user_agent=settings.user_agent,
    )
    return RelayServices(
        settings=settings,
        http_client=http_client,
        cache=cache,
        stats=stats,
        pool=pool,
        prober=prober,
        selector=selector,
        monitor=monitor,
        planner=planner,
        gateway=gateway,
        github=github,
    )
