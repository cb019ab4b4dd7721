"""Phase duration recalculation engine.

Re-derives a phase's planned_duration_days from its current tasks. Each task
contributes its effective end offset: the number of business days from the
phase start to the task's end (start + duration + buffer). The largest
offset becomes the phase duration. The phase's own buffer_days is left
alone; task buffers never propagate upward except through the task end.

Phases in override mode are skipped unless the caller forces the update,
and phases without tasks keep their manually set duration.

The phase row carries a version counter. If another writer updates the phase
between our read and write, SQLAlchemy raises StaleDataError; callers on the
best-effort path log it and the next recalculation self-corrects.

Example:
    >>> result = await recalculate_phase_duration(session, phase_id)
    >>> result.calculation.calculated_duration_days
    7
    >>> result.calculation.driving_task_id == task_b.id
    True
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from buildplan.database.models.phase import DurationMode, Phase
from buildplan.database.queries.phase import get_phase, list_tasks_of_phase, update_phase
from buildplan.errors import NotFoundError, ValidationError
from buildplan.scheduling.calendar import (
    ONE_DAY,
    business_day_offset,
    business_days_between,
    calculate_end_date,
)

logger = structlog.get_logger(__name__)

SKIP_OVERRIDE = "duration_mode_override"
SKIP_NO_TASKS = "no_tasks"


@dataclass(frozen=True)
class TaskTimelineEntry:
    """One task's effective window relative to its phase.

    Attributes:
        task_id: The task.
        task_name: Display name.
        start_date: Planned start.
        end_date: Effective end (start + duration + buffer business days).
        duration_days: Planned business-day duration.
        buffer_days: Task buffer in business days.
        sequence_order: Ordering within the project.
        offset_days: Business days from the phase start to end_date.
    """

    task_id: UUID
    task_name: str
    start_date: date
    end_date: date
    duration_days: int
    buffer_days: int
    sequence_order: int
    offset_days: int


@dataclass(frozen=True)
class PhaseDurationCalculation:
    """Breakdown of a recalculation, returned for diagnostics and UI.

    Attributes:
        phase_id: The recalculated phase.
        phase_start_date: Anchor for all offsets.
        previous_duration_days: Duration before this calculation.
        calculated_duration_days: Maximum task offset, None without tasks.
        applied: Whether the calculated duration was written.
        skip_reason: Why nothing was written (SKIP_OVERRIDE, SKIP_NO_TASKS).
        driving_task_id: The task whose end produced the maximum.
        earliest_task_start: Earliest task start.
        latest_task_end: Latest task effective end.
        suggested_end_date: Phase end with the calculated duration and the
            phase's own buffer.
        task_timeline: Per-task entries ordered by sequence_order.
        has_overlapping_tasks: Whether any two task windows overlap.
        has_gaps: Whether idle business days separate consecutive tasks.
        total_gap_days: Sum of idle business days between consecutive tasks.
    """

    phase_id: UUID
    phase_start_date: date
    previous_duration_days: int
    calculated_duration_days: int | None
    applied: bool = False
    skip_reason: str | None = None
    driving_task_id: UUID | None = None
    earliest_task_start: date | None = None
    latest_task_end: date | None = None
    suggested_end_date: date | None = None
    task_timeline: list[TaskTimelineEntry] = field(default_factory=list)
    has_overlapping_tasks: bool = False
    has_gaps: bool = False
    total_gap_days: int = 0

    @property
    def skipped(self) -> bool:
        return not self.applied


@dataclass(frozen=True)
class RecalculationResult:
    """The phase after recalculation plus the calculation breakdown."""

    phase: Phase
    calculation: PhaseDurationCalculation


def build_task_timeline(tasks: Sequence[Phase], phase_start: date) -> list[TaskTimelineEntry]:
    """Effective windows and end offsets of tasks, ordered by sequence_order."""
    timeline = []
    for task in sorted(tasks, key=lambda t: t.sequence_order):
        buffer_days = task.buffer_days or 0
        end = calculate_end_date(task.planned_start_date, task.planned_duration_days, buffer_days)
        timeline.append(
            TaskTimelineEntry(
                task_id=task.id,
                task_name=task.name,
                start_date=task.planned_start_date,
                end_date=end,
                duration_days=task.planned_duration_days,
                buffer_days=buffer_days,
                sequence_order=task.sequence_order,
                offset_days=business_day_offset(phase_start, end),
            )
        )
    return timeline


def _overlaps_and_gaps(timeline: Sequence[TaskTimelineEntry]) -> tuple[bool, int]:
    # End dates are exclusive: a task starting on its predecessor's end date
    # follows it directly.
    by_start = sorted(timeline, key=lambda e: (e.start_date, e.end_date))
    overlapping = False
    latest_end = None
    for entry in by_start:
        if latest_end is not None and entry.start_date < latest_end:
            overlapping = True
            break
        latest_end = entry.end_date if latest_end is None else max(latest_end, entry.end_date)

    if overlapping:
        return True, 0

    gap_days = 0
    for current, following in zip(by_start, by_start[1:]):
        if following.start_date > current.end_date:
            gap_days += business_days_between(current.end_date, following.start_date - ONE_DAY)
    return False, gap_days


def calculate_phase_duration(phase: Phase, tasks: Sequence[Phase]) -> PhaseDurationCalculation:
    """Compute the duration a phase would get from its tasks, without writing.

    Args:
        phase: The phase.
        tasks: Its current tasks.

    Returns:
        The calculation; skip_reason is SKIP_NO_TASKS when tasks is empty.
    """
    if not tasks:
        return PhaseDurationCalculation(
            phase_id=phase.id,
            phase_start_date=phase.planned_start_date,
            previous_duration_days=phase.planned_duration_days,
            calculated_duration_days=None,
            skip_reason=SKIP_NO_TASKS,
        )

    timeline = build_task_timeline(tasks, phase.planned_start_date)
    driver = max(timeline, key=lambda e: (e.offset_days, e.end_date))
    overlapping, gap_days = _overlaps_and_gaps(timeline)

    return PhaseDurationCalculation(
        phase_id=phase.id,
        phase_start_date=phase.planned_start_date,
        previous_duration_days=phase.planned_duration_days,
        calculated_duration_days=driver.offset_days,
        driving_task_id=driver.task_id,
        earliest_task_start=min(e.start_date for e in timeline),
        latest_task_end=max(e.end_date for e in timeline),
        suggested_end_date=calculate_end_date(
            phase.planned_start_date, driver.offset_days, phase.buffer_days or 0
        ),
        task_timeline=timeline,
        has_overlapping_tasks=overlapping,
        has_gaps=gap_days > 0,
        total_gap_days=gap_days,
    )


async def recalculate_phase_duration(
    session: AsyncSession,
    phase_id: UUID,
    force_update: bool = False,
) -> RecalculationResult:
    """Re-derive and persist a phase's planned duration from its tasks.

    Tasks are re-read from the database so a just-committed mutation is
    always included. duration_mode is never changed here.

    Args:
        session: Active async database session.
        phase_id: The phase to recalculate.
        force_update: Recalculate even when the phase is in override mode.

    Returns:
        RecalculationResult with the (possibly unchanged) phase.

    Raises:
        NotFoundError: If the phase does not exist.
        ValidationError: If phase_id refers to a task.
    """
    phase = await get_phase(session, phase_id)
    if phase is None:
        raise NotFoundError("Phase", phase_id)
    if phase.is_task:
        raise ValidationError("Only phases can be recalculated, not tasks")

    tasks = await list_tasks_of_phase(session, phase_id)
    calculation = calculate_phase_duration(phase, tasks)

    if phase.duration_mode == DurationMode.override and not force_update:
        calculation = replace(calculation, skip_reason=SKIP_OVERRIDE)
        logger.info(
            "phase_recalculation_skipped",
            phase_id=str(phase_id),
            reason=SKIP_OVERRIDE,
            calculated_duration_days=calculation.calculated_duration_days,
        )
        return RecalculationResult(phase=phase, calculation=calculation)

    if calculation.calculated_duration_days is None:
        logger.info(
            "phase_recalculation_skipped",
            phase_id=str(phase_id),
            reason=SKIP_NO_TASKS,
        )
        return RecalculationResult(phase=phase, calculation=calculation)

    new_duration = calculation.calculated_duration_days
    phase = await update_phase(
        session,
        phase_id,
        planned_duration_days=new_duration,
        calculated_duration_days=new_duration,
        last_calculated_at=datetime.now(timezone.utc),
    )
    calculation = replace(calculation, applied=True)

    logger.info(
        "phase_recalculated",
        phase_id=str(phase_id),
        previous_duration_days=calculation.previous_duration_days,
        duration_days=new_duration,
        driving_task_id=str(calculation.driving_task_id),
        task_count=len(calculation.task_timeline),
        forced=force_update,
    )

    return RecalculationResult(phase=phase, calculation=calculation)
