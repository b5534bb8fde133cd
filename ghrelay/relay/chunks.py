"""Multi-relay download planning.

Splits a resource into contiguous byte ranges, one per relay, so a client
can download the shards in parallel and concatenate them. The total size is
read from one HEAD request through the first relay; every relay is assumed
to serve byte-identical content for the same upstream URL.
"""

from __future__ import annotations

import logging

import httpx

from ghrelay.middleware.error_handler import NoDomainAvailableError, UpstreamError
from ghrelay.gateway.targets import build_proxied_url
from ghrelay.relay.pool import DomainPool
from ghrelay.relay.selector import RelaySelector
from ghrelay.relay.types import ChunkPlan, ChunkShard

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
_MB = 1024 * 1024


def shard_count_for_size(
    size_bytes: int,
    *,
    enabled: bool,
    small_mb: int,
    medium_mb: int,
    large_mb: int,
) -> int:
    """Recommended number of relays for a file of ``size_bytes``."""
    if not enabled:
        return 1
    size_mb = size_bytes / _MB
    if size_mb < small_mb:
        return 1
    if size_mb < medium_mb:
        return 3
    if size_mb < large_mb:
        return 5
    return 10


def partition(total: int, count: int) -> list[tuple[int, int]]:
    """Split ``[0, total)`` into ``count`` contiguous inclusive ranges.

    Sizes differ by at most one byte; the first ``total % count`` ranges get
    the extra byte. ``count`` is capped at ``total`` so no range is empty.
    """
    if total <= 0 or count <= 0:
        return []
    count = min(count, total)
    base, extra = divmod(total, count)
    ranges: list[tuple[int, int]] = []
    start = 0
    for i in range(count):
        size = base + (1 if i < extra else 0)
        ranges.append((start, start + size - 1))
        start += size
    return ranges


class ChunkPlanner:
    """Builds single- and multi-relay download plans."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        pool: DomainPool,
        selector: RelaySelector,
        head_timeout_seconds: float = 10.0,
        user_agent: str = "GitHub-Proxy-Service",
        enable_multi_proxy: bool = False,
        small_mb: int = 5,
        medium_mb: int = 50,
        large_mb: int = 100,
        default_shard_count: int = 5,
    ) -> None:
        self._http_client = http_client
        self._pool = pool
        self._selector = selector
        self._head_timeout_seconds = head_timeout_seconds
        self._user_agent = user_agent
        self._enable_multi_proxy = enable_multi_proxy
        self._tiers = (small_mb, medium_mb, large_mb)
        self._default_shard_count = default_shard_count

    def recommended_shards(self, size_bytes: int | None) -> int:
        if size_bytes is None:
            return 1
        small, medium, large = self._tiers
        return shard_count_for_size(
            size_bytes,
            enabled=self._enable_multi_proxy,
            small_mb=small,
            medium_mb=medium,
            large_mb=large,
        )

    async def describe(self, target_url: str) -> ChunkPlan:
        """Single-relay plan: one relay from the selector, one unbounded shard."""
        relay = await self._selector.select()
        proxied = build_proxied_url(relay, target_url)
        size, content_type = await self._head(proxied)
        return ChunkPlan(
            target_url=target_url,
            content_length=size,
            content_type=content_type,
            shards=[
                ChunkShard(
                    domain=relay,
                    proxied_url=proxied,
                    start_byte=0 if size else None,
                    end_byte=size - 1 if size else None,
                    size=size,
                )
            ],
        )

    async def plan(self, target_url: str, shard_count: int | None = None) -> ChunkPlan:
        """Multi-relay plan over ``min(shard_count, pool size)`` distinct relays.

        Without an explicit ``shard_count`` the size tiers decide, falling back
        to the configured default when multi-relay downloads are disabled.

        Raises
        ------
        NoDomainAvailableError
            If the pool is empty.
        UpstreamError
            If the HEAD request through the first relay fails.
        """
        relays = self._pool.list()
        if not relays:
            raise NoDomainAvailableError()

        first_url = build_proxied_url(relays[0], target_url)
        size, content_type = await self._head(first_url)

        if shard_count is None:
            shard_count = (
                self.recommended_shards(size)
                if self._enable_multi_proxy
                else self._default_shard_count
            )
        selected = relays[: max(1, min(shard_count, len(relays)))]

        if not size:
            # No known size: nothing to partition.
            return ChunkPlan(
                target_url=target_url,
                content_length=size,
                content_type=content_type,
                shards=[
                    ChunkShard(
                        domain=selected[0],
                        proxied_url=first_url,
                        start_byte=None,
                        end_byte=None,
                        size=size,
                    )
                ],
            )

        shards = [
            ChunkShard(
                domain=relay,
                proxied_url=build_proxied_url(relay, target_url),
                start_byte=start,
                end_byte=end,
                size=end - start + 1,
            )
            for relay, (start, end) in zip(selected, partition(size, len(selected)))
        ]
        logger.info(
            "Planned %d shards for %s (%d bytes)",
            len(shards),
            target_url,
            size,
            extra={"target_url": target_url, "bytes": size},
        )
        return ChunkPlan(
            target_url=target_url,
            content_length=size,
            content_type=content_type,
            shards=shards,
        )

    async def _head(self, proxied_url: str) -> tuple[int | None, str]:
        """Return ``(content_length, content_type)`` from a HEAD through a relay."""
        try:
            response = await self._http_client.head(
                proxied_url,
                headers={"User-Agent": self._user_agent},
                timeout=self._head_timeout_seconds,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            logger.error("HEAD through relay failed for %s: %s", proxied_url, exc)
            raise UpstreamError("Failed to read resource size") from exc

        if not response.is_success:
            raise UpstreamError(
                "Failed to read resource size",
                upstream_status=response.status_code,
            )

        raw_length = response.headers.get("content-length")
        try:
            size = int(raw_length) if raw_length is not None else None
        except ValueError:
            size = None
        if size is not None and size < 0:
            size = None
        return size, response.headers.get("content-type") or DEFAULT_CONTENT_TYPE
