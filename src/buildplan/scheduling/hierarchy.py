"""Phase/task hierarchy rules.

A project is a two-level hierarchy: phases at the top, tasks underneath.
Tasks may not nest, must share their parent's project, and their effective
date window must fit inside the parent phase's window once buffers are
included. Sibling tasks may overlap freely.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from buildplan.database.models.phase import Phase
from buildplan.errors import ValidationError
from buildplan.scheduling.calendar import calculate_end_date, parse_date
from buildplan.scheduling.metrics import calculate_phase_progress


@dataclass(frozen=True)
class DateWindow:
    """Effective [start, end] range of a phase or task."""

    start: date
    end: date

    @classmethod
    def of(cls, start: date, duration_days: int, buffer_days: int = 0) -> DateWindow:
        return cls(start, calculate_end_date(start, duration_days, buffer_days))

    def contains(self, other: DateWindow) -> bool:
        return self.start <= other.start and other.end <= self.end


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def window_of(obj: Any) -> DateWindow:
    """Effective window of a phase, task, or mapping of their fields."""
    return DateWindow.of(
        parse_date(_get(obj, "planned_start_date")),
        _get(obj, "planned_duration_days") or 0,
        _get(obj, "buffer_days") or 0,
    )


def validate_task_dates(task: Any, parent_phase: Any) -> list[str]:
    """Check a candidate task against its parent phase.

    The task may be a Phase row, a pydantic model or a plain mapping with
    planned_start_date, planned_duration_days and buffer_days.

    Args:
        task: Candidate or updated task fields.
        parent_phase: The resolved parent phase.

    Returns:
        Human-readable error strings; empty when the task is valid.
    """
    errors: list[str] = []

    duration = _get(task, "planned_duration_days")
    buffer_days = _get(task, "buffer_days")
    if duration is not None and duration < 1:
        errors.append("Task duration must be at least 1 day")
    if buffer_days is not None and buffer_days < 0:
        errors.append("Task buffer days cannot be negative")

    if _get(task, "planned_start_date") is None:
        errors.append("Task start date is required")
        return errors
    if errors:
        return errors

    task_window = window_of(task)
    parent_window = window_of(parent_phase)

    if task_window.start < parent_window.start:
        errors.append(
            f"Task start date ({task_window.start.isoformat()}) must be on or after "
            f"phase start date ({parent_window.start.isoformat()})"
        )
    if task_window.end > parent_window.end:
        errors.append(
            f"Task end date ({task_window.end.isoformat()}) must be on or before "
            f"phase end date ({parent_window.end.isoformat()})"
        )

    return errors


def validate_phase_window(phase_fields: Any, tasks: Iterable[Any]) -> list[str]:
    """Check that every current task still fits a phase's (new) window.

    Used when a phase's own start, duration or buffer is edited.

    Args:
        phase_fields: The phase after the proposed edit.
        tasks: The phase's current tasks.

    Returns:
        One error string per task that would fall outside the window.
    """
    parent_window = window_of(phase_fields)
    errors = []
    for task in tasks:
        task_window = window_of(task)
        if not parent_window.contains(task_window):
            errors.append(
                f"Task '{task.name}' ({task_window.start.isoformat()} to "
                f"{task_window.end.isoformat()}) would fall outside the phase window "
                f"({parent_window.start.isoformat()} to {parent_window.end.isoformat()})"
            )
    return errors


def ensure_hierarchy(is_task: bool, parent_phase_id: UUID | None) -> None:
    """Raise unless a phase has no parent and a task has one."""
    if is_task and parent_phase_id is None:
        raise ValidationError("Tasks must have a parent_phase_id")
    if not is_task and parent_phase_id is not None:
        raise ValidationError("Phases must not have a parent_phase_id")


def ensure_task_parent(parent: Phase, project_id: UUID | None = None) -> None:
    """Raise unless parent can hold tasks (a phase of the expected project)."""
    if parent.is_task:
        raise ValidationError("Cannot create tasks under another task")
    if parent.parent_phase_id is not None:
        raise ValidationError("Parent phase must be a top-level phase")
    if project_id is not None and parent.project_id != project_id:
        raise ValidationError("Task must belong to the same project as its parent phase")


@dataclass
class PhaseWithTasks:
    """A top-level phase grouped with its tasks and read-time progress.

    Exposes the scheduling attributes of the wrapped phase so it can be fed
    straight into the metric functions.
    """

    phase: Phase
    tasks: list[Phase] = field(default_factory=list)
    computed_progress: int = 0

    @property
    def id(self) -> UUID:
        return self.phase.id

    @property
    def is_task(self) -> bool:
        return False

    @property
    def parent_phase_id(self) -> None:
        return None

    @property
    def status(self) -> Any:
        return self.phase.status

    @property
    def planned_start_date(self) -> date:
        return self.phase.planned_start_date

    @property
    def planned_end_date(self) -> date | None:
        return self.phase.planned_end_date

    @property
    def planned_duration_days(self) -> int:
        return self.phase.planned_duration_days

    @property
    def buffer_days(self) -> int:
        return self.phase.buffer_days


def build_phase_tree(items: Sequence[Phase]) -> list[PhaseWithTasks]:
    """Group a flat project listing into phases with their tasks.

    Order of the input is preserved for both phases and tasks. Tasks whose
    parent is not in the listing are dropped.
    """
    nodes: dict[UUID, PhaseWithTasks] = {}
    for item in items:
        if not item.is_task:
            nodes[item.id] = PhaseWithTasks(phase=item)

    for item in items:
        if item.is_task and item.parent_phase_id in nodes:
            nodes[item.parent_phase_id].tasks.append(item)

    for node in nodes.values():
        node.computed_progress = calculate_phase_progress(node.phase, node.tasks)

    return list(nodes.values())
