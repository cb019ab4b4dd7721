"""Pytest fixtures for integration tests.

Provides async database fixtures backed by an in-memory SQLite database,
an HTTP client wired to the FastAPI app with that database, and helpers to
seed projects, phases and tasks. Production runs on PostgreSQL; the schema
uses portable column types so the same models work on both.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from buildplan.config import BuildplanConfig, DatabaseConfig
from buildplan.database.connection import get_engine, get_session_factory
from buildplan.database.models import Base, Phase, Project
from buildplan.database.queries.phase import create_phase
from buildplan.database.queries.project import create_project
from buildplan.web.app import create_app


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite async engine with the full schema."""
    test_engine = get_engine(DatabaseConfig(url="sqlite+aiosqlite:///:memory:"))

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return get_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_config() -> BuildplanConfig:
    return BuildplanConfig()


@pytest_asyncio.fixture
async def async_client(
    test_config: BuildplanConfig,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the FastAPI app, backed by the test database."""
    app = create_app(test_config)
    app.state.session_factory = session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def project(db_session: AsyncSession) -> Project:
    return await create_project(db_session, name="Riverside Duplex", organization_id="org_a")


@pytest_asyncio.fixture
async def phase(db_session: AsyncSession, project: Project, phase_start: date) -> Phase:
    """A 10-business-day phase starting Saturday 2025-02-01."""
    return await create_phase(
        db_session,
        project_id=project.id,
        name="Foundation",
        planned_start_date=phase_start,
        planned_duration_days=10,
        sequence_order=1,
    )


@pytest.fixture
def add_task(db_session: AsyncSession):
    """Insert task rows directly, bypassing service validation."""

    async def _add_task(
        parent: Phase,
        name: str,
        start: date,
        duration: int,
        buffer_days: int = 0,
        sequence_order: int = 1,
        **fields: Any,
    ) -> Phase:
        return await create_phase(
            db_session,
            project_id=parent.project_id,
            name=name,
            planned_start_date=start,
            planned_duration_days=duration,
            buffer_days=buffer_days,
            sequence_order=sequence_order,
            parent_phase_id=parent.id,
            is_task=True,
            **fields,
        )

    return _add_task
