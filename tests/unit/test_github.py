"""Unit tests for the GitHub release client and clone helpers."""

from __future__ import annotations

import httpx
import pytest

from ghrelay.cache.result_cache import ResultCache
from ghrelay.integration.github import (
    GitHubClient,
    clone_command,
    normalize_repo,
    with_proxied_urls,
)
from ghrelay.middleware.error_handler import (
    AccessDeniedError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from tests.conftest import mock_client

RELEASE = {
    "id": 7,
    "name": "Release 1",
    "tag_name": "v1.0.0",
    "published_at": "2024-05-01T00:00:00Z",
    "prerelease": False,
    "assets": [
        {
            "name": "tool.tar.gz",
            "size": 1024,
            "download_count": 10,
            "browser_download_url": "https://github.com/o/r/releases/download/v1.0.0/tool.tar.gz",
        }
    ],
}


def _client(handler, cache: ResultCache | None = None) -> GitHubClient:
    return GitHubClient(http_client=mock_client(handler), cache=cache if cache is not None else ResultCache())


class TestNormalizeRepo:
    @pytest.mark.parametrize(
        "raw",
        ["o/r", "https://github.com/o/r", "github.com/o/r/", "https://github.com/o/r.git", " o/r "],
    )
    def test_accepted_forms(self, raw):
        assert normalize_repo(raw) == "o/r"

    @pytest.mark.parametrize("raw", ["", "o", "o/r/extra", "o r/x"])
    def test_rejected_forms(self, raw):
        with pytest.raises(ValidationError):
            normalize_repo(raw)


class TestCloneCommand:
    def test_short_form(self):
        result = clone_command("owner/repo", "relay.example")
        assert result["original_url"] == "https://github.com/owner/repo.git"
        assert result["proxied_url"] == "https://relay.example/owner/repo.git"
        assert result["command"] == "git clone https://relay.example/owner/repo.git"

    def test_full_url_keeps_path(self):
        result = clone_command("https://github.com/owner/repo", "relay.example")
        assert result["proxied_url"] == "https://relay.example/owner/repo"

    def test_other_host_is_denied(self):
        with pytest.raises(AccessDeniedError):
            clone_command("https://gitlab.com/owner/repo.git", "relay.example")


class TestGetReleases:
    @pytest.mark.asyncio
    async def test_maps_listing(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[RELEASE])

        listing = await _client(handler).get_releases("https://github.com/o/r")

        assert listing["repo"] == "o/r"
        assert listing["count"] == 1
        release = listing["releases"][0]
        assert release["tag"] == "v1.0.0"
        assert release["assets"][0]["url"].endswith("tool.tar.gz")
        assert seen[0].url.path == "/repos/o/r/releases"
        assert seen[0].headers["accept"] == "application/vnd.github.v3+json"

    @pytest.mark.asyncio
    async def test_listing_is_cached(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=[RELEASE])

        cache = ResultCache()
        client = _client(handler, cache)
        await client.get_releases("o/r")
        await client.get_releases("o/r")

        assert len(calls) == 1
        assert cache.get("releases:o/r")["count"] == 1

    @pytest.mark.asyncio
    async def test_missing_repository(self):
        with pytest.raises(NotFoundError):
            await _client(lambda r: httpx.Response(404, json={})).get_releases("o/r")

    @pytest.mark.asyncio
    async def test_no_releases(self):
        cache = ResultCache()
        with pytest.raises(NotFoundError):
            await _client(lambda r: httpx.Response(200, json=[]), cache).get_releases("o/r")
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_api_error_status(self):
        with pytest.raises(UpstreamError) as exc_info:
            await _client(lambda r: httpx.Response(403, json={})).get_releases("o/r")
        assert exc_info.value.details["upstream_status"] == 403

    @pytest.mark.asyncio
    async def test_api_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        with pytest.raises(UpstreamError):
            await _client(handler).get_releases("o/r")

    @pytest.mark.asyncio
    async def test_non_json_body_is_upstream_error(self):
        cache = ResultCache()
        client = _client(lambda r: httpx.Response(200, text="<html>rate limited</html>"), cache)

        with pytest.raises(UpstreamError):
            await client.get_releases("o/r")
        assert len(cache) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"message": "Moved"}, ["v1.0.0"], "v1.0.0"])
    async def test_unexpected_json_shape_is_upstream_error(self, body):
        with pytest.raises(UpstreamError):
            await _client(lambda r: httpx.Response(200, json=body)).get_releases("o/r")

    @pytest.mark.asyncio
    async def test_malformed_assets_are_skipped(self):
        release = {**RELEASE, "assets": [*RELEASE["assets"], "not-an-asset"]}
        listing = await _client(lambda r: httpx.Response(200, json=[release])).get_releases("o/r")

        assert [a["name"] for a in listing["releases"][0]["assets"]] == ["tool.tar.gz"]


class TestWithProxiedUrls:
    def test_adds_proxied_url_without_mutating(self):
        listing = {"repo": "o/r", "count": 1, "releases": [{"assets": [{"url": "https://github.com/x"}]}]}
        result = with_proxied_urls(listing, "relay.example")
        assert result["relay"] == "relay.example"
        assert result["releases"][0]["assets"][0]["proxied_url"] == "https://relay.example/https://github.com/x"
        assert "proxied_url" not in listing["releases"][0]["assets"][0]

    def test_no_relay(self):
        listing = {"repo": "o/r", "count": 1, "releases": [{"assets": [{"url": "https://github.com/x"}]}]}
        assert with_proxied_urls(listing, None)["releases"][0]["assets"][0]["proxied_url"] is None
