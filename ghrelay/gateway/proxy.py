"""Streaming pass-through to relay domains.

An inbound ``/{protocol}://{host}/{path}`` request is checked against the
host allow-list, a relay is resolved, and the request is forwarded to
``https://{relay}/{protocol}://{host}/{path}``. The upstream status and
headers are copied to the caller and the body is piped through chunk by
chunk without buffering. Upstream error responses are passed through as they
are; only a failure with no response at all becomes a generic 500.

The upstream response is always closed when the downstream response ends,
including when the caller disconnects mid-stream.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import httpx
from fastapi import Request
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from ghrelay.gateway.targets import build_proxied_url, parse_target, require_allowed
from ghrelay.middleware.error_handler import UpstreamError
from ghrelay.relay.selector import RelaySelector
from ghrelay.stats.collector import StatsCollector

logger = logging.getLogger(__name__)

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
    }
)
_HOP_BY_HOP_RAW = frozenset(h.encode("latin-1") for h in HOP_BY_HOP_HEADERS)

# Methods whose request body is forwarded.
BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def filter_hop_by_hop(raw_headers: list[tuple[bytes, bytes]]) -> list[tuple[bytes, bytes]]:
    return [(k, v) for k, v in raw_headers if k.lower() not in _HOP_BY_HOP_RAW]


class RelayedResponse(StreamingResponse):
    """Streams an upstream ``httpx`` response body and releases it afterwards.

    ``on_finish`` is called exactly once with the response when streaming
    ends, whether it completed or was cut short.
    """

    def __init__(
        self,
        upstream: httpx.Response,
        on_finish: Callable[[RelayedResponse], None] | None = None,
    ) -> None:
        self.upstream = upstream
        self.bytes_sent = 0
        self.completed = False
        self._on_finish = on_finish
        super().__init__(self._iter_body(), status_code=upstream.status_code)
        # Raw pairs keep repeated headers such as set-cookie intact.
        self.raw_headers = filter_hop_by_hop(list(upstream.headers.raw))

    async def _iter_body(self):
        # aiter_raw: no content decoding, bytes go out as the relay sent them
        async for chunk in self.upstream.aiter_raw():
            self.bytes_sent += len(chunk)
            yield chunk
        self.completed = True

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            if self._on_finish is not None:
                self._on_finish(self)
            await asyncio.shield(self.upstream.aclose())


class StreamingProxyGateway:
    """Forwards allow-listed requests through a selected relay.

    Parameters
    ----------
    http_client:
        Shared outbound client.
    selector:
        Resolves the relay for each request.
    stats:
        Receives ``proxy_requests``, ``proxy_bytes`` and ``errors`` per relay.
    allowed_hosts:
        Upstream hosts (and their subdomains) that may be proxied.
    connect_timeout_seconds / read_timeout_seconds:
        Bound on connecting to a relay and on each wait for body bytes.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        selector: RelaySelector,
        stats: StatsCollector,
        allowed_hosts: list[str],
        connect_timeout_seconds: float = 10.0,
        read_timeout_seconds: float = 60.0,
    ) -> None:
        self._http_client = http_client
        self._selector = selector
        self._stats = stats
        self._allowed_hosts = allowed_hosts
        self._timeout = httpx.Timeout(
            read_timeout_seconds,
            connect=connect_timeout_seconds,
        )

    async def forward(self, request: Request, raw_target: str) -> RelayedResponse:
        """Relay ``request`` to the resource named by ``raw_target``.

        Raises
        ------
        AccessDeniedError
            If the target host is not allow-listed; no outbound call is made.
        NoDomainAvailableError
            If the relay pool is empty.
        UpstreamError
            If the relay could not be reached at all.
        """
        target = require_allowed(parse_target(raw_target), self._allowed_hosts)
        relay = await self._selector.select()

        url = build_proxied_url(relay, target.url)
        if request.url.query:
            url = f"{url}?{request.url.query}"

        self._stats.increment("proxy_requests", domain=relay)
        logger.info(
            "Proxying %s %s via %s",
            request.method,
            target.url,
            relay,
            extra={"relay_domain": relay, "target_url": target.url},
        )

        upstream_request = self._http_client.build_request(
            request.method,
            url,
            headers=filter_hop_by_hop(list(request.headers.raw)),
            content=request.stream() if request.method in BODY_METHODS else None,
            timeout=self._timeout,
        )

        try:
            upstream = await self._http_client.send(
                upstream_request, stream=True, follow_redirects=True
            )
        except httpx.HTTPError as exc:
            self._stats.increment("errors", domain=relay)
            logger.error(
                "Relay request failed",
                extra={
                    "relay_domain": relay,
                    "target_url": target.url,
                    "error_reason": str(exc) or type(exc).__name__,
                },
            )
            raise UpstreamError() from exc

        if upstream.status_code >= 500:
            self._stats.increment("errors", domain=relay)

        return RelayedResponse(upstream, on_finish=self._make_finish_hook(relay, target.url))

    def _make_finish_hook(self, relay: str, target_url: str) -> Callable[[RelayedResponse], None]:
        def _finish(response: RelayedResponse) -> None:
            self._stats.increment("proxy_bytes", response.bytes_sent, domain=relay)
            if not response.completed:
                logger.info(
                    "Stream via %s ended early after %d bytes",
                    relay,
                    response.bytes_sent,
                    extra={
                        "relay_domain": relay,
                        "target_url": target_url,
                        "bytes": response.bytes_sent,
                    },
                )

        return _finish
