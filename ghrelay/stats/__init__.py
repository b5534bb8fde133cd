"""Traffic and request statistics."""

from ghrelay.stats.collector import StatsCollector, format_bytes, format_duration

__all__ = ["StatsCollector", "format_bytes", "format_duration"]
