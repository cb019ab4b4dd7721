"""SQLAlchemy ORM models for Buildplan.

All models use SQLAlchemy 2.0 declarative style with Mapped[] type annotations.
"""

from buildplan.database.models.base import Base, TimestampMixin
from buildplan.database.models.phase import (
    TROUBLE_STATUSES,
    DurationMode,
    Phase,
    PhaseStatus,
)
from buildplan.database.models.project import Project, ProjectStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "Project",
    "ProjectStatus",
    "Phase",
    "PhaseStatus",
    "DurationMode",
    "TROUBLE_STATUSES",
]
