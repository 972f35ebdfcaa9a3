"""Integration tests: API app creation, middleware stack, endpoint routing."""

import pytest
from fastapi.testclient import TestClient

from vitalsync.exceptions import ConfigurationError
from vitalsync.main import create_app


class TestAppFactory:
    def test_app_creates_successfully(self, settings):
        app = create_app(settings)
        assert app.title == "vitalsync"
        assert app.version == "1.0.0"

    def test_docs_available_in_dev(self, settings):
        app = create_app(settings.model_copy(update={"app_env": "development"}))
        assert app.docs_url == "/docs"
        assert app.redoc_url == "/redoc"

    def test_docs_disabled_in_production(self, settings):
        app = create_app(settings)
        assert app.docs_url is None
        assert app.redoc_url is None


class TestHealthEndpoints:
    def test_basic_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "vitalsync-api"}

    def test_request_id_header(self, client):
        response = client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 8

    def test_metrics_endpoint(self, client):
        client.get("/health")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "text/plain" in response.headers.get("content-type", "")
        assert "vitalsync_sync_runs" in response.text


class TestReadinessChecks:
    def test_provider_config_ok(self, settings):
        from vitalsync.main import _check_provider_config

        assert _check_provider_config(settings) == "ok"

    def test_provider_config_missing_client(self, settings):
        from vitalsync.main import _check_provider_config

        result = _check_provider_config(settings.model_copy(update={"whoop_client_id": ""}))
        assert result.startswith("error:")
        assert "WHOOP_CLIENT_ID" in result


class TestCORSHeaders:
    def test_cors_preflight(self, client):
        response = client.options(
            "/api/v1/sync/status",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
                "Access-Control-Request-Headers": "Authorization",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"

    def test_cors_disallowed_origin(self, client):
        response = client.options(
            "/api/v1/sync/status",
            headers={
                "Origin": "http://evil.example.com",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert response.headers.get("access-control-allow-origin") != "http://evil.example.com"


class TestRouterRegistration:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/v1/auth/whoop"),
            ("GET", "/api/v1/auth/whoop/callback"),
            ("GET", "/api/v1/cron/sync"),
            ("POST", "/api/v1/webhooks/whoop"),
            ("POST", "/api/v1/sync/manual"),
            ("GET", "/api/v1/sync/status"),
            ("DELETE", "/api/v1/connections/whoop"),
        ],
    )
    def test_route_registered(self, app, method, path):
        routes = {(m, route.path) for route in app.routes for m in getattr(route, "methods", ())}
        assert (method, path) in routes

    def test_nonexistent_route_returns_404(self, client):
        assert client.get("/api/v1/nonexistent").status_code == 404


class TestErrorHandler:
    @pytest.fixture
    def failing_client(self, app):
        async def explode():
            raise RuntimeError("upstream said Bearer abc.def.ghi")

        async def misconfigured():
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY environment variable is not set")

        app.add_api_route("/boom", explode)
        app.add_api_route("/misconfigured", misconfigured)
        return TestClient(app)

    def test_unhandled_exception_is_500(self, failing_client):
        response = failing_client.get("/boom")
        assert response.status_code == 500
        assert response.json()["error_type"] == "RuntimeError"
        assert "abc.def.ghi" not in response.text

    def test_configuration_error_is_500(self, failing_client):
        response = failing_client.get("/misconfigured")
        assert response.status_code == 500
        assert response.json()["error_type"] == "ConfigurationError"
