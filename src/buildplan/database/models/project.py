"""Project model for Buildplan.

Defines the Project table and ProjectStatus enum. A project owns an ordered
set of phases and may carry a frozen baseline snapshot used for schedule
variance comparison.
"""

from __future__ import annotations

import enum
from datetime import date

from sqlalchemy import Date, Enum, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from buildplan.database.models.base import Base, TimestampMixin


class ProjectStatus(enum.Enum):
    """Lifecycle status for a construction project.

    States:
        planning: Schedule is being drafted.
        active: Work is under way on site.
        on_hold: Work temporarily suspended.
        completed: Handover done.
        cancelled: Project abandoned.
    """

    planning = "planning"
    active = "active"
    on_hold = "on_hold"
    completed = "completed"
    cancelled = "cancelled"


class Project(TimestampMixin, Base):
    """A construction project owned by a builder organization.

    Attributes:
        id: UUID primary key (from TimestampMixin).
        organization_id: Tenant that owns the project.
        name: Human-readable project name.
        slug: URL-friendly identifier, unique per organization.
        description: Free-form description.
        status: Current lifecycle status.
        baseline_start_date: Frozen planned start captured by set_baseline.
        baseline_duration_days: Frozen total calendar-day duration.
        baseline_set_date: Day the baseline was captured.
    """

    __tablename__ = "projects"

    organization_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ProjectStatus] = mapped_column(
        Enum(ProjectStatus, name="project_status"),
        default=ProjectStatus.planning,
        nullable=False,
    )
    baseline_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    baseline_duration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    baseline_set_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    @property
    def has_baseline(self) -> bool:
        """True when both the baseline start and duration are recorded."""
        return bool(self.baseline_duration_days) and self.baseline_start_date is not None
