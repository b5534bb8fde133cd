"""Relay domain pool with local persistence and remote refresh.

The pool is loaded from a newline-delimited file at startup and can be
refreshed from a remote plain-text list. A refresh replaces the whole pool
at once, rewrites the local file, and drops every performance record of the
previous pool so a stale latency never outlives the domain list it was
measured against.

All reads and writes of the domain list, the records and the round-robin
cursor go through a single lock; readers only ever see complete snapshots.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
from collections.abc import Iterable
from dataclasses import replace
from pathlib import Path

import httpx

from ghrelay.middleware.error_handler import FetchError, NoDomainAvailableError
from ghrelay.relay.types import DomainRecord, ProbeResult

logger = logging.getLogger(__name__)


def parse_domain_list(text: str) -> list[str]:
    """Parse a newline-delimited relay list.

    Blank lines and ``#`` comments are ignored, surrounding whitespace is
    stripped and duplicates are dropped while keeping first-seen order.
    """
    domains: list[str] = []
    seen: set[str] = set()
    for line in text.splitlines():
        domain = line.strip()
        if not domain or domain.startswith("#") or domain in seen:
            continue
        seen.add(domain)
        domains.append(domain)
    return domains


class DomainPool:
    """Owns the in-memory relay list, its records and the round-robin cursor.

    Parameters
    ----------
    http_client:
        Shared client used to download the remote domain list.
    domains_url:
        Remote plain-text list, one relay per line.
    domains_file:
        Local copy, read at boot and rewritten on every successful refresh.
    fetch_timeout_seconds:
        Timeout for the remote list download.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        domains_url: str,
        domains_file: str | Path,
        fetch_timeout_seconds: float = 10.0,
    ) -> None:
        self._http_client = http_client
        self._domains_url = domains_url
        self._domains_file = Path(domains_file)
        self._fetch_timeout_seconds = fetch_timeout_seconds

        self._domains: list[str] = []
        self._records: dict[str, DomainRecord] = {}
        self._cursor: int = 0
        self._generation: int = 0
        self._lock = threading.Lock()
        # Serialises refreshes triggered by the monitor and the API.
        self._refresh_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self) -> list[str]:
        """Load the persisted list; fall back to ``refresh()`` when it is absent or empty.

        Raises
        ------
        FetchError
            If the local list is empty and the remote list cannot be fetched.
        """
        domains: list[str] = []
        if self._domains_file.is_file():
            try:
                text = self._domains_file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning(
                    "Local relay list %s is unreadable (%s); fetching the remote list",
                    self._domains_file,
                    exc,
                )
            else:
                domains = parse_domain_list(text)
                logger.info(
                    "Loaded %d relay domains from %s", len(domains), self._domains_file
                )

        if not domains:
            return await self.refresh()

        self._replace(domains)
        return domains

    async def refresh(self) -> list[str]:
        """Fetch the remote list and atomically replace the pool.

        No retries are attempted; callers decide whether to try again.

        Raises
        ------
        FetchError
            If the remote list is unreachable, returns a non-2xx status or is empty.
        """
        async with self._refresh_lock:
            try:
                response = await self._http_client.get(
                    self._domains_url,
                    timeout=self._fetch_timeout_seconds,
                    follow_redirects=True,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Relay list returned status %d", exc.response.status_code
                )
                raise FetchError(
                    "Relay domain list returned an error status",
                    upstream_status=exc.response.status_code,
                ) from exc
            except httpx.HTTPError as exc:
                logger.error("Relay list unreachable: %s", exc)
                raise FetchError("Relay domain list is unreachable") from exc

            domains = parse_domain_list(response.text)
            if not domains:
                logger.error("Relay list at %s is empty", self._domains_url)
                raise FetchError("Relay domain list is empty")

            self._replace(domains)
            self._persist(domains)
            logger.info("Refreshed relay pool with %d domains", len(domains))
            return domains

    def _replace(self, domains: list[str]) -> None:
        records = {domain: DomainRecord(domain=domain) for domain in domains}
        with self._lock:
            self._domains = list(domains)
            self._records = records
            self._cursor = 0
            self._generation += 1

    def _persist(self, domains: list[str]) -> None:
        """Rewrite the local copy. The in-memory pool stays authoritative if this fails."""
        try:
            self._domains_file.parent.mkdir(parents=True, exist_ok=True)
            self._domains_file.write_text("\n".join(domains), encoding="utf-8")
        except OSError as exc:
            logger.warning(
                "Could not persist relay list to %s: %s", self._domains_file, exc
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self) -> list[str]:
        """Return a snapshot copy of the current pool."""
        with self._lock:
            return list(self._domains)

    def snapshot(self) -> tuple[int, list[str]]:
        """Return ``(generation, domains)`` read under one lock."""
        with self._lock:
            return self._generation, list(self._domains)

    def records(self) -> list[DomainRecord]:
        """Return copies of the per-domain records, in pool order."""
        with self._lock:
            return [replace(self._records[d]) for d in self._domains]

    @property
    def generation(self) -> int:
        """Bumped on every replacement of the domain list."""
        with self._lock:
            return self._generation

    def __len__(self) -> int:
        with self._lock:
            return len(self._domains)

    def __contains__(self, domain: object) -> bool:
        with self._lock:
            return domain in self._records

    # ------------------------------------------------------------------
    # Selection primitives
    # ------------------------------------------------------------------

    def next_round_robin(self) -> str:
        """Return ``pool[cursor]`` and advance the cursor, atomically."""
        with self._lock:
            if not self._domains:
                raise NoDomainAvailableError()
            domain = self._domains[self._cursor]
            self._cursor = (self._cursor + 1) % len(self._domains)
            return domain

    def random_choice(self, rng: random.Random | None = None) -> str:
        """Return a uniformly random domain from the pool."""
        with self._lock:
            if not self._domains:
                raise NoDomainAvailableError()
            return (rng or random).choice(self._domains)

    # ------------------------------------------------------------------
    # Performance records
    # ------------------------------------------------------------------

    def record_probe_results(
        self,
        results: Iterable[ProbeResult],
        generation: int | None = None,
    ) -> None:
        """Store probe outcomes on the matching records.

        Results measured against an earlier pool (``generation`` no longer
        current) or for domains that have left the pool are discarded.
        """
        with self._lock:
            if generation is not None and generation != self._generation:
                return
            for result in results:
                record = self._records.get(result.domain)
                if record is None:
                    continue
                record.last_checked_at = result.checked_at
                record.healthy = result.success
                record.last_latency_ms = result.latency_ms if result.success else None

    def get_stats(self) -> dict:
        """Return pool statistics for the health endpoint."""
        records = self.records()
        healthy = sum(1 for r in records if r.healthy)
        return {
            "total": len(records),
            "healthy": healthy,
            "unhealthy": len(records) - healthy,
            "domains": [r.to_dict() for r in records],
        }
