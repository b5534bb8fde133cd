"""Timed relay probes.

A probe fetches a small, known test file through one relay and measures how
long it takes. Failures are part of the result, never raised: a timeout, a
non-2xx status or a transport error yields ``success=False`` with a reason.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable

import httpx

from ghrelay.relay.types import ProbeResult

logger = logging.getLogger(__name__)


class SpeedProber:
    """Measures relay latency against a fixed test resource.

    Parameters
    ----------
    http_client:
        Shared outbound client.
    test_url:
        Upstream resource fetched through each relay, e.g. a tiny raw file.
    timeout_seconds:
        Total budget of one probe, connection and body included.
    user_agent:
        ``User-Agent`` sent with each probe.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        test_url: str,
        timeout_seconds: float = 5.0,
        user_agent: str = "GitHub-Proxy-Service",
    ) -> None:
        self._http_client = http_client
        self._test_url = test_url
        self._timeout_seconds = timeout_seconds
        self._user_agent = user_agent

    def probe_url(self, domain: str) -> str:
        return f"https://{domain}/{self._test_url}"

    async def probe(self, domain: str) -> ProbeResult:
        """Probe one relay. Never raises for network or HTTP failures."""
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._http_client.get(
                    self.probe_url(domain),
                    headers={"User-Agent": self._user_agent},
                    timeout=self._timeout_seconds,
                    follow_redirects=True,
                ),
                timeout=self._timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.debug("Probe timed out for relay %s", domain)
            return ProbeResult(domain=domain, success=False, reason="timeout")
        except httpx.HTTPError as exc:
            logger.debug("Probe failed for relay %s: %s", domain, exc)
            return ProbeResult(domain=domain, success=False, reason=str(exc) or type(exc).__name__)

        latency_ms = round((time.monotonic() - start) * 1000, 1)
        if not response.is_success:
            return ProbeResult(
                domain=domain,
                success=False,
                status=response.status_code,
                reason=f"HTTP {response.status_code}",
            )

        return ProbeResult(
            domain=domain,
            success=True,
            latency_ms=latency_ms,
            status=response.status_code,
        )

    async def probe_all(self, domains: Iterable[str]) -> list[ProbeResult]:
        """Probe every relay concurrently and wait for all of them.

        Results come back in the order of ``domains``.
        """
        domains = list(domains)
        if not domains:
            return []
        results = await asyncio.gather(*(self.probe(domain) for domain in domains))
        succeeded = sum(1 for r in results if r.success)
        logger.debug("Probed %d relays, %d reachable", len(results), succeeded)
        return list(results)
