"""Configuration module: service settings."""

from ghrelay.config.settings import RelaySettings, Strategy

__all__ = [
    "RelaySettings",
    "Strategy",
]
