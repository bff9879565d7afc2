"""
Tests for salonbooker/main.py - FastAPI app creation, middleware, lifespan, and CORS.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi import FastAPI
from fastapi.testclient import TestClient

from salonbooker.main import CorrelationIdMiddleware, create_app, lifespan


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_mock_settings(**overrides):
    """Build a mock Settings object."""
    defaults = {
        "app_env": "test",
        "app_base_url": "http://localhost:8000",
        "log_level": "WARNING",
        "log_format": "json",
        "allowed_origins": "",
        "session_jwt_secret": "test_jwt_secret",
        "cron_secret": "test_cron_secret",
        "sentry_dsn": "",
    }
    defaults.update(overrides)
    settings = MagicMock()
    for k, v in defaults.items():
        setattr(settings, k, v)
    return settings


def _build_app(**overrides):
    with (
        patch("salonbooker.main.get_settings", return_value=_make_mock_settings(**overrides)),
        patch("salonbooker.main.configure_structured_logging"),
    ):
        return create_app()


# ---------------------------------------------------------------------------
# create_app - application factory
# ---------------------------------------------------------------------------


class TestCreateApp:
    def test_returns_fastapi_instance(self):
        app = _build_app()
        assert isinstance(app, FastAPI)
        assert app.title == "SalonBooker Webhooks"

    def test_configures_structured_logging(self):
        with (
            patch("salonbooker.main.get_settings", return_value=_make_mock_settings(log_level="DEBUG")),
            patch("salonbooker.main.configure_structured_logging") as mock_log,
        ):
            create_app()

        mock_log.assert_called_once_with("DEBUG", "json")

    def test_includes_routes(self):
        route_paths = [route.path for route in _build_app().routes]
        assert "/health" in route_paths
        assert "/api/webhooks" in route_paths
        assert "/api/webhooks/process" in route_paths
        assert "/api/webhooks/{webhook_id}" in route_paths


# ---------------------------------------------------------------------------
# CorrelationIdMiddleware
# ---------------------------------------------------------------------------


class TestCorrelationIdMiddleware:
    def test_generates_correlation_id_when_missing(self):
        client = TestClient(_build_app(), raise_server_exceptions=False)
        response = client.get("/health")

        assert len(response.headers["x-correlation-id"]) == 32

    def test_uses_existing_correlation_id(self):
        client = TestClient(_build_app(), raise_server_exceptions=False)
        custom_cid = "abc123def456789012345678abcdef00"
        response = client.get("/health", headers={"X-Correlation-ID": custom_cid})

        assert response.headers["x-correlation-id"] == custom_cid

    def test_middleware_is_installed(self):
        app = _build_app()
        assert any(m.cls is CorrelationIdMiddleware for m in app.user_middleware)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


class TestCorsMiddleware:
    def _preflight(self, app, origin):
        client = TestClient(app, raise_server_exceptions=False)
        return client.options(
            "/health",
            headers={"Origin": origin, "Access-Control-Request-Method": "GET"},
        )

    def test_allows_localhost_outside_production(self):
        response = self._preflight(_build_app(), "http://localhost:5173")
        assert response.headers.get("access-control-allow-origin") == "http://localhost:5173"

    def test_allows_configured_origins(self):
        app = _build_app(app_env="production", allowed_origins="https://book.salon.example, https://admin.salon.example")
        response = self._preflight(app, "https://admin.salon.example")
        assert response.headers.get("access-control-allow-origin") == "https://admin.salon.example"

    def test_rejects_localhost_in_production(self):
        app = _build_app(app_env="production", app_base_url="https://api.salon.example")
        response = self._preflight(app, "http://localhost:5173")
        assert "access-control-allow-origin" not in response.headers


# ---------------------------------------------------------------------------
# lifespan - startup and shutdown
# ---------------------------------------------------------------------------


class TestLifespan:
    @pytest.mark.asyncio
    async def test_startup_and_shutdown(self):
        with (
            patch("salonbooker.main.get_settings", return_value=_make_mock_settings()),
            patch("salonbooker.main.dispose_engine", new_callable=AsyncMock) as mock_dispose,
        ):
            async with lifespan(MagicMock()):
                mock_dispose.assert_not_awaited()

        mock_dispose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initializes_sentry_when_configured(self):
        settings = _make_mock_settings(sentry_dsn="https://key@sentry.example/1", app_env="production")
        with (
            patch("salonbooker.main.get_settings", return_value=settings),
            patch("sentry_sdk.init") as mock_init,
        ):
            async with lifespan(MagicMock()):
                pass

        mock_init.assert_called_once()
        assert mock_init.call_args.kwargs["environment"] == "production"

    @pytest.mark.asyncio
    async def test_skips_sentry_without_dsn(self):
        with (
            patch("salonbooker.main.get_settings", return_value=_make_mock_settings()),
            patch("sentry_sdk.init") as mock_init,
        ):
            async with lifespan(MagicMock()):
                pass

        mock_init.assert_not_called()
