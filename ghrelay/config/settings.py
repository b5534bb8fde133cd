"""Pydantic Settings for the relay gateway.

All environment variables use the GHRELAY_ prefix.
Example: GHRELAY_PORT=3000, GHRELAY_API_TOKEN=my-secret-token
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Strategy(str, Enum):
    """Relay selection policies."""

    FASTEST = "fastest"
    RANDOM = "random"
    ROUND_ROBIN = "round-robin"


class RelaySettings(BaseSettings):
    """Relay gateway configuration validated from environment variables."""

    # Service
    port: int = Field(default=3000, ge=1, le=65535)
    api_token: str  # ?token= for the management API
    log_level: str = "INFO"

    # Selection
    proxy_strategy: Strategy = Strategy.FASTEST

    # Multi-relay downloads
    enable_multi_proxy: bool = False
    small_file_threshold_mb: int = Field(default=5, ge=0)
    medium_file_threshold_mb: int = Field(default=50, ge=0)
    large_file_threshold_mb: int = Field(default=100, ge=0)
    default_shard_count: int = Field(default=5, ge=1)

    # Result cache
    cache_ttl_seconds: float = Field(default=300, gt=0)
    fastest_cache_ttl_seconds: float = Field(default=60, gt=0)
    cache_sweep_interval_seconds: float = Field(default=60, gt=0)

    # Health monitor
    health_check_enabled: bool = True
    health_check_interval_seconds: float = Field(default=3600, gt=0)  # 1 hour
    healthy_fraction_threshold: float = Field(default=0.5, ge=0, le=1)

    # Relay domain list
    proxy_domains_url: str = (
        "https://raw.githubusercontent.com/rdone4425/qita/refs/heads/main/proxy.txt"
    )
    proxy_domains_file: str = "./data/proxy.txt"

    # Probing
    probe_test_url: str = (
        "https://raw.githubusercontent.com/rdone4425/qita/refs/heads/main/test.txt"
    )
    probe_timeout_seconds: float = Field(default=5.0, gt=0)

    # Outbound pass-through
    proxy_connect_timeout_seconds: float = Field(default=10.0, gt=0)
    proxy_read_timeout_seconds: float = Field(default=60.0, gt=0)
    max_redirects: int = Field(default=5, ge=0)
    allowed_hosts: list[str] = ["github.com", "githubusercontent.com", "githubassets.com"]

    # GitHub API
    github_api_url: str = "https://api.github.com"
    user_agent: str = "GitHub-Proxy-Service"

    model_config = {"env_prefix": "GHRELAY_"}

    @model_validator(mode="after")
    def _check_thresholds(self) -> RelaySettings:
        if not (
            self.small_file_threshold_mb
            < self.medium_file_threshold_mb
            < self.large_file_threshold_mb
        ):
            raise ValueError(
                "file size thresholds must be strictly ascending (small < medium < large)"
            )
        if not self.allowed_hosts:
            raise ValueError("allowed_hosts must not be empty")
        return self
