"""Target resource parsing and allow-list checks."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from ghrelay.middleware.error_handler import AccessDeniedError, ValidationError

# Tolerates "https:/host/..."; some clients collapse the double slash.
_TARGET_RE = re.compile(r"^(?P<protocol>https?):/+(?P<host>[^/?#]+)(?:/(?P<path>.*))?$", re.I)
# Bare DNS name or IPv4 literal with an optional port. No userinfo, no backslashes.
_HOST_RE = re.compile(r"^(?P<hostname>[A-Za-z0-9](?:[A-Za-z0-9.-]*[A-Za-z0-9])?)(?::(?P<port>\d{1,5}))?$")


@dataclass(frozen=True)
class TargetResource:
    protocol: str
    host: str
    path: str

    @property
    def url(self) -> str:
        return f"{self.protocol}://{self.host}/{self.path}"

    @property
    def hostname(self) -> str:
        """Host without port, lower-cased."""
        return self.host.split(":", 1)[0].lower()


def parse_target(raw: str) -> TargetResource:
    """Split ``{protocol}://{host}/{path}`` into its parts.

    Raises ``ValidationError`` when ``raw`` is not an http(s) URL and
    ``AccessDeniedError`` when its authority is anything but a plain host
    (userinfo, backslashes, other non-host characters).
    """
    match = _TARGET_RE.match(raw.strip())
    if match is None:
        raise ValidationError("Target must be an http(s) URL", target=raw)

    protocol = match.group("protocol").lower()
    host = match.group("host")
    host_match = _HOST_RE.match(host)
    if host_match is None:
        raise AccessDeniedError(host=host)
    # The host we check must be the host any URL parser would connect to.
    if urlsplit(f"{protocol}://{host}/").hostname != host_match.group("hostname").lower():
        raise AccessDeniedError(host=host)

    return TargetResource(
        protocol=protocol,
        host=host,
        path=match.group("path") or "",
    )


def is_allowed_host(hostname: str, allowed_hosts: list[str]) -> bool:
    """True when ``hostname`` equals an allowed host or is a subdomain of one."""
    hostname = hostname.lower().rstrip(".")
    for allowed in allowed_hosts:
        allowed = allowed.lower()
        if hostname == allowed or hostname.endswith("." + allowed):
            return True
    return False


def require_allowed(target: TargetResource, allowed_hosts: list[str]) -> TargetResource:
    if not is_allowed_host(target.hostname, allowed_hosts):
        raise AccessDeniedError(host=target.hostname)
    return target


def build_proxied_url(relay: str, target_url: str) -> str:
    """``https://{relay}/{target_url}``, the form every relay understands."""
    return f"https://{relay}/{target_url}"
