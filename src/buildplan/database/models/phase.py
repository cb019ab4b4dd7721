"""Phase model for Buildplan.

Phases and tasks share one table. A row with is_task = False and no parent is
a top-level phase; a row with is_task = True belongs to exactly one parent
phase. planned_end_date is a cached copy of the business-day end date derived
from start, duration and buffer, and is refreshed on every write that touches
those fields.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from buildplan.database.models.base import Base, JSONType, TimestampMixin


class PhaseStatus(enum.Enum):
    """Progress status shared by phases and tasks."""

    not_started = "not_started"
    in_progress = "in_progress"
    completed = "completed"
    delayed = "delayed"
    blocked = "blocked"


class DurationMode(enum.Enum):
    """Whether a phase's duration may be recomputed from its tasks.

    States:
        auto: Recomputed whenever a child task changes.
        override: Manually set; automatic recalculation is skipped.
    """

    auto = "auto"
    override = "override"


# Statuses that flag a schedule as needing attention
TROUBLE_STATUSES = frozenset({PhaseStatus.delayed, PhaseStatus.blocked})


class Phase(TimestampMixin, Base):
    """A schedulable unit of a project: either a phase or a task.

    Attributes:
        id: UUID primary key (from TimestampMixin).
        project_id: Owning project.
        name: Display name ("Foundation", "Pour footings").
        description: Optional free text.
        sequence_order: Builder-assigned ordering within the project.
        planned_start_date: Planned first day.
        planned_duration_days: Planned length in business days.
        buffer_days: Slack in business days added after the duration.
        planned_end_date: Cached start + business days(duration + buffer).
        actual_start_date: Set when work starts.
        actual_end_date: Set when work completes.
        status: Current progress status.
        predecessor_phase_id: Ordering hint, no date shifting is derived from it.
        parent_phase_id: Parent phase for tasks, None for phases.
        is_task: True for tasks.
        color: Presentation tag.
        duration_mode: auto or override, see DurationMode.
        metadata_: Open key/value bag for custom data (column "metadata").
        calculated_duration_days: Last duration derived from tasks.
        last_calculated_at: When the last recalculation was written.
        version: Revision counter used for optimistic concurrency.
    """

    __tablename__ = "phases"

    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    planned_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    planned_duration_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    buffer_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    planned_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    actual_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    actual_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[PhaseStatus] = mapped_column(
        Enum(PhaseStatus, name="phase_status"),
        default=PhaseStatus.not_started,
        nullable=False,
    )
    predecessor_phase_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("phases.id", ondelete="SET NULL"),
        nullable=True,
    )
    parent_phase_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("phases.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    is_task: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    color: Mapped[str] = mapped_column(Text, nullable=False, default="gray")
    duration_mode: Mapped[DurationMode] = mapped_column(
        Enum(DurationMode, name="duration_mode"),
        default=DurationMode.auto,
        nullable=False,
    )
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONType,
        nullable=False,
        default=dict,
    )
    calculated_duration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_calculated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_top_level(self) -> bool:
        """True for a phase (not a task, no parent)."""
        return not self.is_task and self.parent_phase_id is None
