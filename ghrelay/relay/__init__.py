"""Relay pool management: pool, probing, selection, health and chunk planning."""

from ghrelay.relay.chunks import ChunkPlanner, partition, shard_count_for_size
from ghrelay.relay.health import HealthMonitor, HealthReport, MonitorState
from ghrelay.relay.pool import DomainPool, parse_domain_list
from ghrelay.relay.prober import SpeedProber
from ghrelay.relay.selector import RelaySelector, pick_fastest
from ghrelay.relay.types import ChunkPlan, ChunkShard, DomainRecord, ProbeResult

__all__ = [
    "ChunkPlan",
    "ChunkPlanner",
    "ChunkShard",
    "DomainPool",
    "DomainRecord",
    "HealthMonitor",
    "HealthReport",
    "MonitorState",
    "ProbeResult",
    "RelaySelector",
    "SpeedProber",
    "parse_domain_list",
    "partition",
    "pick_fastest",
    "shard_count_for_size",
]
