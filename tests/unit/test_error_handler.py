"""Unit tests for the error hierarchy and FastAPI exception handlers."""

from __future__ import annotations

import pytest
from fastapi import FastAPI, Query
from fastapi.testclient import TestClient

from ghrelay.middleware.error_handler import (
    AccessDeniedError,
    AuthenticationError,
    FetchError,
    InvalidTokenError,
    NoDomainAvailableError,
    NotFoundError,
    RelayError,
    UpstreamError,
    ValidationError,
    register_error_handlers,
)

_ROUTES = {
    "/raise-relay": RelayError,
    "/raise-auth": AuthenticationError,
    "/raise-token": InvalidTokenError,
    "/raise-fetch": FetchError,
    "/raise-no-domain": NoDomainAvailableError,
    "/raise-denied": AccessDeniedError,
    "/raise-upstream": UpstreamError,
    "/raise-not-found": NotFoundError,
}


def _raiser(error_cls: type[RelayError]):
    async def _raise():
        raise error_cls()

    return _raise


def _make_app() -> FastAPI:
    """Build a minimal FastAPI app with error handlers registered."""
    app = FastAPI()
    register_error_handlers(app)

    for path, error_cls in _ROUTES.items():
        app.add_api_route(path, _raiser(error_cls))

    @app.get("/raise-validation")
    async def _raise_validation():
        raise ValidationError("Bad target", target="ftp://x")

    @app.get("/raise-custom-message")
    async def _raise_custom():
        raise NotFoundError("Repository 'a/b' not found")

    @app.get("/raise-unhandled")
    async def _raise_unhandled():
        raise RuntimeError("something unexpected")

    @app.get("/needs-count")
    async def _needs_count(count: int = Query(..., ge=1)):
        return {"ok": True}

    return app


@pytest.fixture()
def client():
    return TestClient(_make_app(), raise_server_exceptions=False)


class TestErrorHierarchy:
    def test_all_subclass_relay_error(self):
        for cls in _ROUTES.values():
            assert issubclass(cls, RelayError)
        assert issubclass(ValidationError, RelayError)

    def test_custom_message_override(self):
        err = NotFoundError("Repository 'a/b' not found")
        assert err.message == "Repository 'a/b' not found"
        assert str(err) == "Repository 'a/b' not found"

    def test_details_kwargs(self):
        err = FetchError("Relay domain list returned an error status", upstream_status=404)
        assert err.details == {"upstream_status": 404}


class TestExceptionHandlers:
    @pytest.mark.parametrize(
        "path,expected_status,expected_error",
        [
            ("/raise-relay", 500, "Internal server error"),
            ("/raise-auth", 401, "Missing authentication token"),
            ("/raise-token", 403, "Invalid authentication token"),
            ("/raise-fetch", 502, "Failed to fetch relay domain list"),
            ("/raise-no-domain", 503, "No relay domain available"),
            ("/raise-denied", 403, "Only GitHub resources can be proxied"),
            ("/raise-upstream", 500, "Proxy request failed"),
            ("/raise-not-found", 404, "Resource not found"),
        ],
    )
    def test_relay_error_envelope(self, client, path, expected_status, expected_error):
        resp = client.get(path)
        assert resp.status_code == expected_status
        body = resp.json()
        assert body["success"] is False
        assert body["data"] is None
        assert body["error"] == expected_error

    def test_custom_message_in_response(self, client):
        resp = client.get("/raise-custom-message")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Repository 'a/b' not found"

    def test_validation_error_with_details(self, client):
        resp = client.get("/raise-validation")
        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "Bad target"
        assert body["meta"] == {"target": "ftp://x"}

    def test_request_validation_error(self, client):
        resp = client.get("/needs-count", params={"count": "zero"})
        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "Validation error"
        assert body["meta"]["fields"][0]["field"] == "query -> count"

    def test_unhandled_exception_is_generic_500(self, client):
        resp = client.get("/raise-unhandled")
        assert resp.status_code == 500
        body = resp.json()
        assert body["error"] == "Internal server error"
        assert "unexpected" not in resp.text
