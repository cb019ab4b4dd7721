"""Tests for engine option selection per database backend."""

from __future__ import annotations

from sqlalchemy.pool import StaticPool

from buildplan.config import DatabaseConfig
from buildplan.database.connection import engine_options


def test_postgres_url_gets_pool_sizing() -> None:
    config = DatabaseConfig(
        url="postgresql+asyncpg://user:pw@db:5432/buildplan",
        pool_size=8,
        max_overflow=2,
    )

    options = engine_options(config)

    assert options["pool_size"] == 8
    assert options["max_overflow"] == 2
    assert options["pool_pre_ping"] is True
    assert "poolclass" not in options


def test_in_memory_sqlite_uses_static_pool() -> None:
    options = engine_options(DatabaseConfig(url="sqlite+aiosqlite:///:memory:"))

    assert options["poolclass"] is StaticPool
    assert options["connect_args"] == {"check_same_thread": False}
    assert "pool_size" not in options


def test_file_sqlite_uses_default_pool() -> None:
    options = engine_options(DatabaseConfig(url="sqlite+aiosqlite:///./buildplan.db"))

    assert "poolclass" not in options
    assert "pool_size" not in options


def test_echo_is_passed_through() -> None:
    options = engine_options(DatabaseConfig(url="sqlite+aiosqlite:///:memory:", echo=True))

    assert options["echo"] is True
