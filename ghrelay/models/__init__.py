"""API models."""

from ghrelay.models.responses import ApiResponse

__all__ = ["ApiResponse"]
