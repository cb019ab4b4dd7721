"""FastAPI application factory for Buildplan.

``create_app`` wires the project, phase and health routers behind CORS and
request logging. The database engine is opened in the lifespan hook unless
a session factory has already been placed on ``app.state`` (tests do this).

Run it with uvicorn through ``buildplan serve`` or directly:
    >>> import uvicorn
    >>> uvicorn.run(create_app(BuildplanConfig()), port=8000)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import make_url

from buildplan import __version__
from buildplan.config import BuildplanConfig
from buildplan.database.connection import get_engine, get_session_factory
from buildplan.logging import get_logger
from buildplan.web.middleware import RequestLoggingMiddleware
from buildplan.web.routes.health import create_health_router
from buildplan.web.routes.phases import create_phases_router
from buildplan.web.routes.projects import create_projects_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the engine for the lifetime of the server process."""
    if getattr(app.state, "session_factory", None) is not None:
        yield
        return

    config: BuildplanConfig = app.state.config
    engine = get_engine(config.database)
    app.state.engine = engine
    app.state.session_factory = get_session_factory(engine)
    logger.info(
        "database_engine_ready",
        backend=make_url(config.database.url).get_backend_name(),
        host=config.web.host,
        port=config.web.port,
    )

    try:
        yield
    finally:
        await engine.dispose()
        logger.info("database_engine_disposed")


def create_app(config: BuildplanConfig | None = None) -> FastAPI:
    """Build the Buildplan HTTP API.

    Args:
        config: Settings to serve with; defaults are used when omitted.

    Returns:
        The FastAPI application, not yet started.
    """
    config = config or BuildplanConfig()

    app = FastAPI(
        title="Buildplan",
        version=__version__,
        description="Construction project phase scheduling service",
        lifespan=lifespan,
    )
    app.state.config = config

    # Added last so it wraps CORS and sees every request
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    for router in (create_health_router(), create_projects_router(), create_phases_router()):
        app.include_router(router)

    logger.debug("app_created", version=__version__, cors_origins=config.web.cors_origins)
    return app
