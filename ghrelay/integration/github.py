"""GitHub release metadata and clone command helpers.

Release listings are fetched from the GitHub REST API and cached in the
shared result cache under ``releases:{owner}/{repo}``. Only metadata is
cached, never asset bodies.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit, urlunsplit

import httpx

from ghrelay.cache.result_cache import ResultCache
from ghrelay.gateway.targets import build_proxied_url
from ghrelay.middleware.error_handler import (
    AccessDeniedError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_REPO_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
_GITHUB_PREFIXES = ("https://github.com/", "http://github.com/", "github.com/")


def normalize_repo(repo: str) -> str:
    """Reduce ``owner/repo``, a GitHub URL or a ``.git`` remote to ``owner/repo``."""
    value = repo.strip()
    for prefix in _GITHUB_PREFIXES:
        if value.lower().startswith(prefix):
            value = value[len(prefix):]
            break
    value = value.strip("/")
    if value.endswith(".git"):
        value = value[:-4]
    if not _REPO_RE.match(value):
        raise ValidationError("Repository must look like 'owner/repo'", repo=repo)
    return value


def clone_command(repo: str, relay: str) -> dict:
    """Build an accelerated ``git clone`` command.

    ``owner/repo`` expands to ``https://github.com/owner/repo.git``; the
    ``github.com`` host of the remote URL is then replaced by ``relay``.
    """
    if repo.strip().lower().startswith(("http://", "https://")):
        original = repo.strip()
    else:
        original = f"https://github.com/{normalize_repo(repo)}.git"

    parts = urlsplit(original)
    if (parts.hostname or "").lower() != "github.com":
        raise AccessDeniedError("Only github.com repositories can be cloned", host=parts.hostname)

    proxied = urlunsplit(parts._replace(netloc=relay))
    return {
        "original_url": original,
        "proxied_url": proxied,
        "relay": relay,
        "command": f"git clone {proxied}",
    }


def _map_release(release: dict) -> dict:
    return {
        "id": release.get("id"),
        "name": release.get("name"),
        "tag": release.get("tag_name"),
        "published_at": release.get("published_at"),
        "prerelease": bool(release.get("prerelease")),
        "assets": [
            {
                "name": asset.get("name"),
                "size": asset.get("size"),
                "download_count": asset.get("download_count"),
                "url": asset.get("browser_download_url"),
            }
            for asset in release.get("assets") or []
            if isinstance(asset, dict)
        ],
    }


def with_proxied_urls(listing: dict, relay: str | None) -> dict:
    """Copy of a release listing with a ``proxied_url`` on every asset."""
    releases = []
    for release in listing["releases"]:
        assets = [
            {
                **asset,
                "proxied_url": build_proxied_url(relay, asset["url"])
                if relay and asset.get("url")
                else None,
            }
            for asset in release["assets"]
        ]
        releases.append({**release, "assets": assets})
    return {**listing, "relay": relay, "releases": releases}


class GitHubClient:
    """Fetches release listings from the GitHub API with TTL caching.

    Parameters
    ----------
    http_client:
        Shared outbound client.
    cache:
        Result cache for listings.
    api_url:
        GitHub REST API base, e.g. ``https://api.github.com``.
    cache_ttl_seconds:
        How long a listing is reused.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        cache: ResultCache,
        api_url: str = "https://api.github.com",
        cache_ttl_seconds: float = 300,
        user_agent: str = "GitHub-Proxy-Service",
        timeout_seconds: float = 10.0,
    ) -> None:
        self._http_client = http_client
        self._cache = cache
        self._api_url = api_url.rstrip("/")
        self._cache_ttl_seconds = cache_ttl_seconds
        self._user_agent = user_agent
        self._timeout_seconds = timeout_seconds

    async def get_releases(self, repo: str) -> dict:
        """Return ``{"repo", "count", "releases"}`` for ``repo``.

        Raises
        ------
        ValidationError
            If ``repo`` is not an ``owner/repo`` reference.
        NotFoundError
            If the repository does not exist or has no releases.
        UpstreamError
            If the API is unreachable or answers with another error status.
        """
        repo = normalize_repo(repo)
        cache_key = f"releases:{repo}"

        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Release listing cache hit for %s", repo)
            return cached

        try:
            response = await self._http_client.get(
                f"{self._api_url}/repos/{repo}/releases",
                headers={
                    "Accept": "application/vnd.github.v3+json",
                    "User-Agent": self._user_agent,
                },
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.error("GitHub API unreachable for %s: %s", repo, exc)
            raise UpstreamError("Failed to fetch releases") from exc

        if response.status_code == 404:
            raise NotFoundError(f"Repository '{repo}' not found")
        if not response.is_success:
            logger.warning(
                "GitHub API returned status %d for %s", response.status_code, repo
            )
            raise UpstreamError(
                "Failed to fetch releases", upstream_status=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning("GitHub API returned a non-JSON body for %s", repo)
            raise UpstreamError("Failed to fetch releases") from exc
        if not isinstance(payload, list) or not all(isinstance(r, dict) for r in payload):
            logger.warning("GitHub API returned an unexpected release listing for %s", repo)
            raise UpstreamError("Failed to fetch releases")

        releases = [_map_release(r) for r in payload]
        if not releases:
            raise NotFoundError(f"Repository '{repo}' has no releases")

        result = {"repo": repo, "count": len(releases), "releases": releases}
        self._cache.set(cache_key, result, ttl_seconds=self._cache_ttl_seconds)
        return result
