"""Relay pool health monitor.

Sweeps the whole pool with the speed prober at startup and then on a fixed
interval. The outcome of every sweep is written to the pool records and kept
as ``last_report`` for the read-only health endpoint. When fewer than
``healthy_fraction_threshold`` of the relays answer, the pool is refreshed
from the remote list; a failed refresh is logged and the loop carries on.

State machine: idle → probing → (refreshing | idle) → idle.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ghrelay.middleware.error_handler import FetchError
from ghrelay.relay.pool import DomainPool
from ghrelay.relay.prober import SpeedProber
from ghrelay.relay.types import ProbeResult
from ghrelay.services.scheduler import PeriodicTask

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"
    PROBING = "probing"
    REFRESHING = "refreshing"


@dataclass
class HealthReport:
    """Summary of one health sweep."""

    total: int
    healthy: int
    results: list[ProbeResult] = field(default_factory=list)
    refreshed: bool = False
    refresh_error: str | None = None
    checked_at: datetime = field(default_factory=datetime.now)

    @property
    def unhealthy(self) -> int:
        return self.total - self.healthy

    @property
    def healthy_fraction(self) -> float:
        return self.healthy / self.total if self.total else 0.0

    def to_dict(self) -> dict:
        return {
            "checked_at": self.checked_at.isoformat(),
            "total": self.total,
            "healthy": self.healthy,
            "unhealthy": self.unhealthy,
            "healthy_fraction": round(self.healthy_fraction, 3),
            "refreshed": self.refreshed,
            "refresh_error": self.refresh_error,
            "results": [
                {
                    "domain": r.domain,
                    "healthy": r.success,
                    "latency_ms": r.latency_ms,
                    "status": r.status,
                    "reason": r.reason,
                }
                for r in self.results
            ],
        }


class HealthMonitor:
    """Periodic pool sweeps with automatic refresh on low availability."""

    def __init__(
        self,
        *,
        pool: DomainPool,
        prober: SpeedProber,
        interval_seconds: float = 3600,
        healthy_fraction_threshold: float = 0.5,
    ) -> None:
        self._pool = pool
        self._prober = prober
        self._threshold = healthy_fraction_threshold
        self._sweep_lock = asyncio.Lock()
        self.state = MonitorState.IDLE
        self.last_report: HealthReport | None = None
        self._task = PeriodicTask(
            "relay-health-check",
            interval_seconds,
            self._scheduled_sweep,
            run_immediately=True,
        )

    def start(self) -> None:
        self._task.start()

    async def stop(self) -> None:
        await self._task.stop()

    async def run_once(self) -> HealthReport:
        """Probe every relay, record the results and refresh the pool if needed."""
        async with self._sweep_lock:
            try:
                self.state = MonitorState.PROBING
                generation, domains = self._pool.snapshot()
                results = await self._prober.probe_all(domains)
                self._pool.record_probe_results(results, generation)

                healthy = sum(1 for r in results if r.success)
                report = HealthReport(total=len(results), healthy=healthy, results=results)

                if report.total > 0 and report.healthy_fraction < self._threshold:
                    logger.warning(
                        "Only %d/%d relays healthy; refreshing relay list",
                        report.healthy,
                        report.total,
                    )
                    self.state = MonitorState.REFRESHING
                    try:
                        await self._pool.refresh()
                        report.refreshed = True
                    except FetchError as exc:
                        report.refresh_error = exc.message
                        logger.error("Automatic relay list refresh failed: %s", exc.message)

                self.last_report = report
                return report
            finally:
                self.state = MonitorState.IDLE

    async def _scheduled_sweep(self) -> None:
        report = await self.run_once()
        logger.info(
            "Health check finished: %d/%d relays healthy",
            report.healthy,
            report.total,
        )

    def get_stats(self) -> dict:
        return {
            "state": self.state.value,
            "last_report": self.last_report.to_dict() if self.last_report else None,
        }
