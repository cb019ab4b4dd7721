"""Database layer for Buildplan.

This module handles database connections, session management, and the
SQLAlchemy models for projects, phases and tasks.

Public API:
    get_engine: Create an AsyncEngine from DatabaseConfig.
    get_session_factory: Create an async_sessionmaker from an engine.
    Base: SQLAlchemy declarative base for all models.
"""

from buildplan.database.connection import get_engine, get_session_factory
from buildplan.database.models import (
    Base,
    DurationMode,
    Phase,
    PhaseStatus,
    Project,
    ProjectStatus,
    TimestampMixin,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "Base",
    "TimestampMixin",
    "Project",
    "ProjectStatus",
    "Phase",
    "PhaseStatus",
    "DurationMode",
]
