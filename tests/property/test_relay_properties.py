"""Property tests for relay selection and download planning.

Validates byte-range partitions (contiguous, complete, balanced), round-robin
fairness, fastest-relay choice and result cache expiry.
"""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

import httpx
from hypothesis import given, settings
from hypothesis import strategies as st

from ghrelay.cache.result_cache import ResultCache
from ghrelay.config.settings import Strategy
from ghrelay.relay.chunks import partition
from ghrelay.relay.pool import DomainPool
from ghrelay.relay.selector import RelaySelector, pick_fastest
from tests.conftest import DOMAINS_URL, FakeClock, FakeProber, failed, latencies, mock_client, ok, relay_pools


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine synchronously."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _loaded_pool(domains: list[str]) -> DomainPool:
    """Pool refreshed from a mocked remote list, persisted to a throwaway directory."""
    with tempfile.TemporaryDirectory() as directory:
        pool = DomainPool(
            http_client=mock_client(lambda r: httpx.Response(200, text="\n".join(domains))),
            domains_url=DOMAINS_URL,
            domains_file=Path(directory) / "proxy.txt",
        )
        _run_async(pool.refresh())
    return pool


# ---------------------------------------------------------------------------
# Partition
# ---------------------------------------------------------------------------


class TestPartitionProperties:
    @settings(max_examples=200)
    @given(
        total=st.integers(min_value=1, max_value=10**12),
        count=st.integers(min_value=1, max_value=64),
    )
    def test_ranges_cover_resource_exactly(self, total: int, count: int):
        ranges = partition(total, count)

        assert len(ranges) == min(total, count)
        assert ranges[0][0] == 0
        assert ranges[-1][1] == total - 1
        for (_, prev_end), (start, _) in zip(ranges, ranges[1:]):
            assert start == prev_end + 1
        assert sum(end - start + 1 for start, end in ranges) == total

    @settings(max_examples=200)
    @given(
        total=st.integers(min_value=1, max_value=10**9),
        count=st.integers(min_value=1, max_value=64),
    )
    def test_ranges_are_balanced_and_non_empty(self, total: int, count: int):
        sizes = [end - start + 1 for start, end in partition(total, count)]
        assert min(sizes) >= 1
        assert max(sizes) - min(sizes) <= 1


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


class TestRoundRobinProperties:
    @settings(max_examples=50, deadline=None)
    @given(domains=relay_pools, cycles=st.integers(min_value=1, max_value=3))
    def test_every_relay_once_per_cycle(self, domains: list[str], cycles: int):
        pool = _loaded_pool(domains)
        picks = [pool.next_round_robin() for _ in range(len(domains) * cycles)]

        for cycle in range(cycles):
            window = picks[cycle * len(domains):(cycle + 1) * len(domains)]
            assert window == domains


class TestFastestProperties:
    @settings(max_examples=100)
    @given(
        entries=st.lists(
            st.tuples(st.booleans(), latencies), min_size=1, max_size=12
        )
    )
    def test_pick_is_minimum_successful_latency(self, entries):
        results = [
            ok(f"r{i}.com", latency) if success else failed(f"r{i}.com")
            for i, (success, latency) in enumerate(entries)
        ]
        winner = pick_fastest(results)

        successful = [r for r in results if r.success]
        if not successful:
            assert winner is None
            return
        best = min(r.latency_ms for r in successful)
        first_best = next(r.domain for r in successful if r.latency_ms == best)
        assert winner == first_best

    @settings(max_examples=30, deadline=None)
    @given(domains=relay_pools, data=st.data())
    def test_selected_relay_is_pool_member(self, domains: list[str], data):
        pool = _loaded_pool(domains)
        answered = data.draw(st.lists(st.sampled_from(domains), unique=True))
        prober = FakeProber({d: ok(d, float(i + 1)) for i, d in enumerate(answered)})
        selector = RelaySelector(
            pool=pool, prober=prober, cache=ResultCache(), strategy=Strategy.FASTEST
        )

        chosen = _run_async(selector.select())

        assert chosen in domains
        if answered:
            assert chosen == answered[0]


# ---------------------------------------------------------------------------
# Result cache
# ---------------------------------------------------------------------------


class TestCacheProperties:
    @settings(max_examples=100)
    @given(
        ttl=st.integers(min_value=1, max_value=10_000),
        elapsed=st.integers(min_value=0, max_value=20_000),
    )
    def test_entry_lives_exactly_its_ttl(self, ttl: int, elapsed: int):
        clock = FakeClock(start=0)
        cache = ResultCache(clock=clock)
        cache.set("k", "v", ttl_seconds=ttl)
        clock.advance(elapsed)

        if elapsed < ttl:
            assert cache.get("k") == "v"
        else:
            assert cache.get("k") is None
            assert len(cache) == 0
