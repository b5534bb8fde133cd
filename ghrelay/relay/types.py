"""Relay pool data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime


@dataclass
class DomainRecord:
    """Latest known performance of a single relay domain.

    ``last_latency_ms`` is ``None`` when the last probe failed (unreachable)
    or the domain has not been probed since it entered the pool.
    """

    domain: str
    last_latency_ms: float | None = None
    last_checked_at: datetime | None = None
    healthy: bool = True

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "last_latency_ms": self.last_latency_ms,
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "healthy": self.healthy,
        }


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one timed probe through a relay."""

    domain: str
    success: bool
    latency_ms: float | None = None
    status: int = 0  # 0 when no HTTP response was received
    reason: str | None = None
    checked_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["checked_at"] = self.checked_at.isoformat()
        return data


@dataclass(frozen=True)
class ChunkShard:
    """One byte range of a resource, fetched through one relay.

    ``start_byte``/``end_byte`` are inclusive. Both are ``None`` for an
    unpartitioned plan whose size could not be determined.
    """

    domain: str
    proxied_url: str
    start_byte: int | None
    end_byte: int | None
    size: int | None

    @property
    def range_header(self) -> str | None:
        if self.start_byte is None or self.end_byte is None:
            return None
        return f"bytes={self.start_byte}-{self.end_byte}"


@dataclass
class ChunkPlan:
    """Ordered shards covering a whole resource."""

    target_url: str
    content_length: int | None
    content_type: str
    shards: list[ChunkShard] = field(default_factory=list)

    @property
    def domains(self) -> list[str]:
        return [shard.domain for shard in self.shards]

    def to_dict(self) -> dict:
        return {
            "target_url": self.target_url,
            "content_length": self.content_length,
            "content_type": self.content_type,
            "domains": self.domains,
            "shard_count": len(self.shards),
            "shards": [
                {
                    "domain": s.domain,
                    "proxied_url": s.proxied_url,
                    "start_byte": s.start_byte,
                    "end_byte": s.end_byte,
                    "size": s.size,
                    "range": s.range_header,
                }
                for s in self.shards
            ],
        }
