"""In-memory TTL cache for probe results and metadata."""

from ghrelay.cache.result_cache import ResultCache

__all__ = ["ResultCache"]
