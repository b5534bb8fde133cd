"""Process-wide request and traffic counters.

Global counters: ``proxy_requests``, ``proxy_bytes``, ``api_requests`` and
``errors``. When a relay domain is given, the matching per-domain counter
(requests, bytes, errors) moves too. Snapshots derive per-second rates from
the time elapsed since the last reset.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

GLOBAL_COUNTERS = ("proxy_requests", "proxy_bytes", "api_requests", "errors")

# Global counter → per-domain field
_DOMAIN_FIELDS = {
    "proxy_requests": "requests",
    "proxy_bytes": "bytes",
    "errors": "errors",
}

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def format_bytes(num: float) -> str:
    """Human-readable size, base 1024, at most two decimals."""
    if num <= 0:
        return "0 B"
    exponent = 0
    while num >= 1024 and exponent < len(_BYTE_UNITS) - 1:
        num /= 1024
        exponent += 1
    return f"{round(num, 2):g} {_BYTE_UNITS[exponent]}"


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
    if days:
        return f"{days}d {hours % 24}h"
    if hours:
        return f"{hours}h {minutes % 60}m"
    if minutes:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


@dataclass
class DomainCounters:
    requests: int = 0
    bytes: int = 0
    errors: int = 0


class StatsCollector:
    """Thread-safe counters with derived rate snapshots.

    Args:
        clock: Wall-clock source in seconds, injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._started_at = clock()
        self._counters: dict[str, int] = dict.fromkeys(GLOBAL_COUNTERS, 0)
        self._domains: dict[str, DomainCounters] = {}

    def increment(self, key: str, value: int = 1, domain: str | None = None) -> None:
        """Add ``value`` to global counter ``key`` and, if given, to ``domain``'s counter.

        Unknown keys start a new global counter.
        """
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value
            field_name = _DOMAIN_FIELDS.get(key)
            if domain and field_name:
                counters = self._domains.setdefault(domain, DomainCounters())
                setattr(counters, field_name, getattr(counters, field_name) + value)

    def get(self, key: str) -> int:
        with self._lock:
            return self._counters.get(key, 0)

    def domain(self, domain: str) -> DomainCounters:
        with self._lock:
            counters = self._domains.get(domain, DomainCounters())
            return DomainCounters(counters.requests, counters.bytes, counters.errors)

    def snapshot(self) -> dict:
        """Counters, rates since ``started_at`` and a per-domain ranking by requests."""
        with self._lock:
            now = self._clock()
            started_at = self._started_at
            counters = dict(self._counters)
            domains = {d: DomainCounters(c.requests, c.bytes, c.errors) for d, c in self._domains.items()}

        uptime = max(now - started_at, 0.0)
        requests_per_second = counters["proxy_requests"] / uptime if uptime else 0.0
        bytes_per_second = counters["proxy_bytes"] / uptime if uptime else 0.0

        ranking = sorted(domains.items(), key=lambda item: item[1].requests, reverse=True)

        return {
            "started_at": datetime.fromtimestamp(started_at, tz=timezone.utc).isoformat(),
            "uptime_seconds": round(uptime, 3),
            "uptime": format_duration(uptime),
            **counters,
            "total_traffic": format_bytes(counters["proxy_bytes"]),
            "requests_per_second": round(requests_per_second, 2),
            "bytes_per_second": round(bytes_per_second, 2),
            "traffic_per_second": format_bytes(bytes_per_second) + "/s",
            "domains": [
                {
                    "domain": domain,
                    "requests": c.requests,
                    "bytes": c.bytes,
                    "traffic": format_bytes(c.bytes),
                    "errors": c.errors,
                }
                for domain, c in ranking
            ],
        }

    def reset(self) -> None:
        """Zero every counter and restart the clock."""
        with self._lock:
            self._started_at = self._clock()
            self._counters = dict.fromkeys(GLOBAL_COUNTERS, 0)
            self._domains = {}
        logger.info("Statistics reset")
