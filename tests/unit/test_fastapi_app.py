"""Unit tests for FastAPI application setup.

Tests cover:
- Application factory and registered routes
- CORS and request logging middleware
- Health and readiness endpoints
- Mapping of domain errors to HTTP responses
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm.exc import StaleDataError

from buildplan import __version__
from buildplan.config import BuildplanConfig, WebConfig
from buildplan.errors import NotFoundError, ValidationError
from buildplan.web.app import create_app
from buildplan.web.dependencies import http_error
from buildplan.web.middleware import RequestLoggingMiddleware


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestCreateApp:
    """Test application factory function."""

    def test_app_metadata(self) -> None:
        app = create_app()
        assert isinstance(app, FastAPI)
        assert app.title == "Buildplan"
        assert app.version == __version__

    def test_app_stores_config_in_state(self) -> None:
        config = BuildplanConfig()
        app = create_app(config)
        assert app.state.config is config

    def test_routes_registered(self) -> None:
        app = create_app()
        paths = set(app.openapi()["paths"])

        assert "/health/" in paths
        assert "/projects/" in paths
        assert "/projects/{project_id}/metrics" in paths
        assert "/projects/{project_id}/baseline" in paths
        assert "/phases/{phase_id}/tasks" in paths
        assert "/phases/{phase_id}/recalculate-duration" in paths

    def test_route_package_exports_resolve(self) -> None:
        from buildplan.web import routes

        missing = [name for name in routes.__all__ if not hasattr(routes, name)]
        assert missing == []


class TestMiddleware:
    """Test middleware configuration."""

    def test_cors_uses_config_origins(self) -> None:
        origins = ["https://app.example.com", "https://admin.example.com"]
        app = create_app(BuildplanConfig(web=WebConfig(cors_origins=origins)))

        cors = [m for m in app.user_middleware if m.cls == CORSMiddleware]
        assert len(cors) == 1
        assert cors[0].kwargs["allow_origins"] == origins
        assert cors[0].kwargs["allow_credentials"] is True

    def test_logging_middleware_is_registered(self) -> None:
        app = create_app()
        assert any(m.cls == RequestLoggingMiddleware for m in app.user_middleware)

    @pytest.mark.asyncio
    async def test_correlation_id_echoed(self) -> None:
        app = create_app()
        app.state.session_factory = MagicMock()

        async with _client(app) as client:
            response = await client.get("/health/", headers={"X-Correlation-ID": "req-42"})

        assert response.headers["X-Correlation-ID"] == "req-42"

    @pytest.mark.asyncio
    async def test_correlation_id_generated(self) -> None:
        app = create_app()
        app.state.session_factory = MagicMock()

        async with _client(app) as client:
            response = await client.get("/health/")

        assert response.headers["X-Correlation-ID"]


class TestHealthEndpoints:
    """Test liveness and readiness endpoints."""

    @pytest.fixture
    def healthy_app(self) -> FastAPI:
        app = create_app()
        mock_session = AsyncMock()
        mock_session.execute = AsyncMock(return_value=MagicMock())

        factory = MagicMock()
        factory.return_value.__aenter__ = AsyncMock(return_value=mock_session)
        factory.return_value.__aexit__ = AsyncMock(return_value=None)
        app.state.session_factory = factory
        return app

    @pytest.fixture
    def unhealthy_app(self) -> FastAPI:
        app = create_app()
        factory = MagicMock()
        factory.return_value.__aenter__ = AsyncMock(
            side_effect=Exception("Database connection failed")
        )
        factory.return_value.__aexit__ = AsyncMock(return_value=None)
        app.state.session_factory = factory
        return app

    @pytest.mark.asyncio
    async def test_health_returns_ok(self, healthy_app: FastAPI) -> None:
        async with _client(healthy_app) as client:
            response = await client.get("/health/")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}

    @pytest.mark.asyncio
    async def test_readiness_when_database_connected(self, healthy_app: FastAPI) -> None:
        async with _client(healthy_app) as client:
            response = await client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "connected"}

    @pytest.mark.asyncio
    async def test_readiness_when_database_down(self, unhealthy_app: FastAPI) -> None:
        async with _client(unhealthy_app) as client:
            response = await client.get("/health/ready")

        assert response.status_code == 503
        assert response.json() == {"status": "unavailable", "database": "disconnected"}


class TestHttpError:
    """Test translation of domain errors to HTTP errors."""

    def test_validation_error_is_400_with_details(self) -> None:
        exc = http_error(ValidationError(["first problem", "second problem"]))
        assert exc.status_code == 400
        assert exc.detail == {
            "error": "Validation failed",
            "details": ["first problem", "second problem"],
        }

    def test_not_found_is_404(self) -> None:
        exc = http_error(NotFoundError("Phase"))
        assert exc.status_code == 404
        assert exc.detail == "Phase not found"

    def test_stale_data_is_409(self) -> None:
        assert http_error(StaleDataError("stale")).status_code == 409

    def test_unknown_error_is_500(self) -> None:
        assert http_error(RuntimeError("boom")).status_code == 500
