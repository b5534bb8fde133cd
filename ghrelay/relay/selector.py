"""Relay selection policies.

- fastest: probe the whole pool, pick the lowest latency (ties keep pool
  order), cache the winner for a short TTL; fall back to a random relay when
  every probe fails.
- random: uniform choice, no network activity.
- round-robin: the pool's shared cursor, advanced atomically.

Every policy raises ``NoDomainAvailableError`` when the pool is empty.
"""

from __future__ import annotations

import asyncio
import logging
import random

from ghrelay.cache.result_cache import ResultCache
from ghrelay.config.settings import Strategy
from ghrelay.middleware.error_handler import NoDomainAvailableError
from ghrelay.relay.pool import DomainPool
from ghrelay.relay.prober import SpeedProber
from ghrelay.relay.types import ProbeResult

logger = logging.getLogger(__name__)

FASTEST_CACHE_KEY = "fastest-domain"


def pick_fastest(results: list[ProbeResult]) -> str | None:
    """Return the reachable domain with the lowest latency, or ``None``.

    ``sorted`` is stable, so equal latencies keep their pool order.
    """
    successful = sorted(
        (r for r in results if r.success and r.latency_ms is not None),
        key=lambda r: r.latency_ms,
    )
    return successful[0].domain if successful else None


class RelaySelector:
    """Resolves one relay domain per call according to the configured strategy."""

    def __init__(
        self,
        *,
        pool: DomainPool,
        prober: SpeedProber,
        cache: ResultCache,
        strategy: Strategy = Strategy.FASTEST,
        fastest_ttl_seconds: float = 60,
        rng: random.Random | None = None,
    ) -> None:
        self._pool = pool
        self._prober = prober
        self._cache = cache
        self._strategy = Strategy(strategy)
        self._fastest_ttl_seconds = fastest_ttl_seconds
        self._rng = rng or random.Random()
        # One probe sweep at a time; concurrent callers reuse its result.
        self._fastest_lock = asyncio.Lock()

    @property
    def strategy(self) -> Strategy:
        return self._strategy

    async def select(self) -> str:
        if self._strategy is Strategy.RANDOM:
            return self.select_random()
        if self._strategy is Strategy.ROUND_ROBIN:
            return self.select_round_robin()
        return await self.select_fastest()

    def select_random(self) -> str:
        return self._pool.random_choice(self._rng)

    def select_round_robin(self) -> str:
        return self._pool.next_round_robin()

    async def select_fastest(self) -> str:
        if len(self._pool) == 0:
            raise NoDomainAvailableError()

        cached = self._cached_fastest()
        if cached is not None:
            return cached

        async with self._fastest_lock:
            cached = self._cached_fastest()
            if cached is not None:
                return cached

            generation, domains = self._pool.snapshot()
            if not domains:
                raise NoDomainAvailableError()

            results = await self._prober.probe_all(domains)
            self._pool.record_probe_results(results, generation)

            fastest = pick_fastest(results)
            if fastest is None:
                logger.warning(
                    "No relay answered the speed probe; falling back to random selection"
                )
                return self.select_random()

            self._cache.set(
                FASTEST_CACHE_KEY,
                (generation, fastest),
                ttl_seconds=self._fastest_ttl_seconds,
            )
            logger.info("Fastest relay is %s", fastest, extra={"relay_domain": fastest})
            return fastest

    def _cached_fastest(self) -> str | None:
        """Cached winner, ignored once the pool it was measured in has been replaced."""
        cached = self._cache.get(FASTEST_CACHE_KEY)
        if cached is None:
            return None
        generation, domain = cached
        if generation != self._pool.generation or domain not in self._pool:
            return None
        return domain
