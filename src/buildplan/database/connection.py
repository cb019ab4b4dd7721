"""Engine and session factories for Buildplan.

Production runs on PostgreSQL through asyncpg with a sized connection pool.
A sqlite+aiosqlite URL is accepted for local runs and tests; pool sizing is
skipped there and an in-memory database is pinned to a single connection so
every session sees the same schema.

Example usage:
    >>> engine = get_engine(DatabaseConfig(url="postgresql+asyncpg://localhost/buildplan"))
    >>> SessionFactory = get_session_factory(engine)
    >>>
    >>> async with SessionFactory() as session:
    ...     phases = await list_phases(session, project_id)
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from buildplan.config import DatabaseConfig


def engine_options(config: DatabaseConfig) -> dict[str, Any]:
    """Keyword arguments for create_async_engine suited to the URL's backend."""
    url = make_url(config.url)
    options: dict[str, Any] = {"echo": config.echo}

    if url.get_backend_name() != "sqlite":
        options["pool_size"] = config.pool_size
        options["max_overflow"] = config.max_overflow
        options["pool_pre_ping"] = True
    elif url.database in (None, "", ":memory:"):
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}

    return options


def get_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create the async engine for the configured database.

    Args:
        config: Database URL, pool sizing and echo flag.

    Returns:
        AsyncEngine ready for use by get_session_factory.
    """
    return create_async_engine(config.url, **engine_options(config))


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the web app and the CLI.

    Objects stay readable after commit (expire_on_commit=False); queries that
    must observe other writers' commits use populate_existing instead.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
