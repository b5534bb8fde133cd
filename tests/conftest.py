"""Shared test fixtures and hypothesis strategies for the relay gateway test suite."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from hypothesis import strategies as st

from ghrelay.cache.result_cache import ResultCache
from ghrelay.config.settings import RelaySettings, Strategy
from ghrelay.relay.pool import DomainPool
from ghrelay.relay.prober import SpeedProber
from ghrelay.relay.types import ProbeResult
from ghrelay.stats.collector import StatsCollector

DOMAINS_URL = "https://lists.example/proxy.txt"
TEST_URL = "https://raw.githubusercontent.com/owner/repo/main/test.txt"


# ---------------------------------------------------------------------------
# Ensure required env vars are set for RelaySettings in tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set minimal env vars so RelaySettings can be instantiated in tests."""
    if "GHRELAY_API_TOKEN" not in os.environ:
        monkeypatch.setenv("GHRELAY_API_TOKEN", "test-token")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced clock for cache and stats tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProber(SpeedProber):
    """Prober returning canned results; counts sweeps."""

    def __init__(self, results: dict[str, ProbeResult] | None = None) -> None:
        self.results = results or {}
        self.calls = 0

    async def probe(self, domain: str) -> ProbeResult:
        return self.results.get(domain, ProbeResult(domain=domain, success=False, reason="timeout"))

    async def probe_all(self, domains) -> list[ProbeResult]:
        self.calls += 1
        return [await self.probe(d) for d in domains]


def ok(domain: str, latency_ms: float) -> ProbeResult:
    return ProbeResult(domain=domain, success=True, latency_ms=latency_ms, status=200)


def failed(domain: str, reason: str = "timeout") -> ProbeResult:
    return ProbeResult(domain=domain, success=False, reason=reason)


async def streamed(body: bytes):
    """Body for a fake upstream response that stays unread until it is streamed."""
    yield body


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """Async client whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def unused_transport(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected outbound request: {request.method} {request.url}")


async def make_pool(domains: list[str], tmp_path: Path) -> DomainPool:
    """Pool pre-loaded with ``domains`` from a local file."""
    file = tmp_path / "proxy.txt"
    file.write_text("\n".join(domains), encoding="utf-8")
    pool = DomainPool(
        http_client=mock_client(unused_transport),
        domains_url=DOMAINS_URL,
        domains_file=file,
    )
    await pool.load()
    return pool


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path: Path) -> RelaySettings:
    """Test settings with safe defaults and no background monitor."""
    return RelaySettings(
        api_token="test-token",
        proxy_strategy=Strategy.ROUND_ROBIN,
        proxy_domains_url=DOMAINS_URL,
        proxy_domains_file=str(tmp_path / "data" / "proxy.txt"),
        probe_test_url=TEST_URL,
        health_check_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ResultCache:
    return ResultCache(default_ttl_seconds=300, clock=clock)


@pytest.fixture
def stats(clock: FakeClock) -> StatsCollector:
    return StatsCollector(clock=clock)


# ---------------------------------------------------------------------------
# Hypothesis strategies (reusable across property tests)
# ---------------------------------------------------------------------------

relay_domains = st.from_regex(r"[a-z]{3,10}\.(com|org|net|io)", fullmatch=True)

relay_pools = st.lists(relay_domains, min_size=1, max_size=12, unique=True)

latencies = st.floats(min_value=1.0, max_value=5000.0, allow_nan=False)
