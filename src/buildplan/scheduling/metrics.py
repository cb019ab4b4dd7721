"""Project duration, completion and schedule status calculations.

Pure functions over a flat collection of phases and tasks belonging to one
project. Items only need the scheduling attributes of the Phase model
(is_task, parent_phase_id, planned_start_date, planned_end_date,
planned_duration_days, buffer_days, status) and optionally a read-time
computed_progress, so ORM rows and PhaseWithTasks nodes both work.

Example:
    >>> duration = calculate_project_duration(phases)
    >>> status = get_schedule_status(project, phases, duration)
    >>> status.status, status.days_off
    (<ScheduleState.behind: 'behind'>, 12)
"""

from __future__ import annotations

import enum
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from buildplan.database.models.phase import TROUBLE_STATUSES, PhaseStatus
from buildplan.scheduling.calendar import calculate_end_date, days_between

DEFAULT_VARIANCE_RATIO = 0.1

_TROUBLE_VALUES = frozenset(status.value for status in TROUBLE_STATUSES)


class ScheduleState(enum.Enum):
    """Classification of a project's schedule health."""

    on_track = "on_track"
    needs_attention = "needs_attention"
    behind = "behind"


@dataclass(frozen=True)
class ProjectDuration:
    """Wall-clock span of a project.

    Attributes:
        total_days: Calendar days from start_date to end_date.
        start_date: Earliest planned start among top-level phases.
        end_date: Latest effective end among top-level phases.
    """

    total_days: int
    start_date: date | None
    end_date: date | None


@dataclass(frozen=True)
class ScheduleStatus:
    """Result of comparing a project against its baseline.

    Attributes:
        status: The classification.
        message: Human-readable explanation.
        days_off: Signed days over (positive) or under (negative) the
            baseline; None when no baseline is set.
    """

    status: ScheduleState
    message: str
    days_off: int | None


def _status_value(item: Any) -> str:
    status = item.status
    return status.value if isinstance(status, enum.Enum) else str(status)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def top_level_phases(items: Iterable[Any]) -> list[Any]:
    """Filter to phases proper: not a task and without a parent."""
    return [p for p in items if not p.is_task and p.parent_phase_id is None]


def effective_end_date(item: Any) -> date:
    """Stored planned_end_date when present, otherwise derived from start/duration/buffer."""
    if item.planned_end_date is not None:
        return item.planned_end_date
    return calculate_end_date(
        item.planned_start_date,
        item.planned_duration_days,
        item.buffer_days or 0,
    )


def calculate_project_duration(phases: Iterable[Any]) -> ProjectDuration:
    """Compute the calendar span of a project from its top-level phases.

    Tasks are ignored; their influence is already folded into the parent
    phase's duration by the recalculation engine.

    Args:
        phases: All phases and tasks of the project, flattened.

    Returns:
        ProjectDuration; (0, None, None) when there are no top-level phases.
    """
    top_level = top_level_phases(phases or [])
    if not top_level:
        return ProjectDuration(total_days=0, start_date=None, end_date=None)

    start = min(p.planned_start_date for p in top_level)
    end = max(effective_end_date(p) for p in top_level)

    return ProjectDuration(
        total_days=days_between(start, end),
        start_date=start,
        end_date=end,
    )


def calculate_phase_progress(phase: Any, tasks: Sequence[Any]) -> int:
    """Completion percentage of one phase, weighted by task duration.

    A completed 7-day task contributes more than a completed 1-day task.
    Without tasks the phase's own status decides (100 or 0); when every
    task has zero duration the share of completed tasks is used.

    Args:
        phase: The phase.
        tasks: Its current tasks.

    Returns:
        Integer percentage 0-100.
    """
    if not tasks:
        return 100 if _status_value(phase) == PhaseStatus.completed.value else 0

    total = sum(t.planned_duration_days or 0 for t in tasks)
    if total == 0:
        done = sum(1 for t in tasks if _status_value(t) == PhaseStatus.completed.value)
        return _round_half_up(done / len(tasks) * 100)

    completed = sum(
        t.planned_duration_days or 0
        for t in tasks
        if _status_value(t) == PhaseStatus.completed.value
    )
    return _round_half_up(completed / total * 100)


def calculate_completion_percentage(phases: Iterable[Any]) -> int:
    """Unweighted mean progress of the top-level phases.

    Each phase contributes its computed_progress when available, otherwise
    100 if completed and 0 if not. Duration weighting happens one level
    down, inside computed_progress.

    Args:
        phases: All phases and tasks of the project, flattened.

    Returns:
        Integer percentage 0-100; 0 when there are no top-level phases.
    """
    top_level = top_level_phases(phases or [])
    if not top_level:
        return 0

    total = 0
    for phase in top_level:
        progress = getattr(phase, "computed_progress", None)
        if progress is None:
            progress = 100 if _status_value(phase) == PhaseStatus.completed.value else 0
        total += progress

    return _round_half_up(total / len(top_level))


def get_schedule_status(
    project: Any,
    phases: Iterable[Any],
    current_duration: ProjectDuration,
    variance_ratio: float = DEFAULT_VARIANCE_RATIO,
) -> ScheduleStatus:
    """Classify a project as on track, needing attention, or behind.

    Without a baseline only delayed/blocked items matter. With a baseline,
    the current duration is compared against it with a tolerance of
    ceil(baseline * variance_ratio) days.

    Args:
        project: Object with baseline_start_date and baseline_duration_days.
        phases: All phases and tasks of the project.
        current_duration: Output of calculate_project_duration.
        variance_ratio: Acceptable overrun as a fraction of the baseline.

    Returns:
        ScheduleStatus with message and signed days_off.
    """
    has_trouble = any(_status_value(p) in _TROUBLE_VALUES for p in phases or [])
    baseline_days = project.baseline_duration_days

    if not baseline_days or project.baseline_start_date is None:
        if has_trouble:
            return ScheduleStatus(
                ScheduleState.needs_attention,
                "Some phases are delayed or blocked",
                None,
            )
        return ScheduleStatus(ScheduleState.on_track, "Project timeline looks good", None)

    difference = current_duration.total_days - baseline_days
    # round() strips float noise such as 30 * 0.1 == 3.0000000000000004
    acceptable = math.ceil(round(baseline_days * variance_ratio, 9))

    if has_trouble:
        if difference > acceptable:
            return ScheduleStatus(
                ScheduleState.behind,
                f"Project is {abs(difference)} days behind baseline",
                difference,
            )
        return ScheduleStatus(
            ScheduleState.needs_attention,
            "Some phases need attention",
            difference,
        )

    if difference > acceptable:
        return ScheduleStatus(
            ScheduleState.behind,
            f"Timeline extended by {difference} days",
            difference,
        )

    if difference < -acceptable:
        return ScheduleStatus(
            ScheduleState.on_track,
            f"Ahead of schedule by {abs(difference)} days",
            difference,
        )

    return ScheduleStatus(ScheduleState.on_track, "On track with baseline", difference)
