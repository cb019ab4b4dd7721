"""Unit tests for the phase/task hierarchy rules."""

from __future__ import annotations

from datetime import date
from types import SimpleNamespace
from typing import Any
from uuid import uuid4

import pytest

from buildplan.database.models.phase import PhaseStatus
from buildplan.errors import ValidationError
from buildplan.scheduling.hierarchy import (
    DateWindow,
    build_phase_tree,
    ensure_hierarchy,
    ensure_task_parent,
    validate_phase_window,
    validate_task_dates,
    window_of,
)
from buildplan.scheduling.metrics import calculate_completion_percentage

PHASE_START = date(2025, 2, 1)


def make_phase(**overrides: Any) -> SimpleNamespace:
    fields = {
        "id": uuid4(),
        "project_id": uuid4(),
        "name": "Foundation",
        "planned_start_date": PHASE_START,
        "planned_duration_days": 10,  # effective end 2025-02-14
        "buffer_days": 0,
        "planned_end_date": None,
        "status": PhaseStatus.not_started,
        "is_task": False,
        "parent_phase_id": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def make_task(parent: SimpleNamespace, **overrides: Any) -> SimpleNamespace:
    fields = {
        "name": "Pour footings",
        "project_id": parent.project_id,
        "parent_phase_id": parent.id,
        "is_task": True,
        "planned_start_date": date(2025, 2, 3),
        "planned_duration_days": 3,
    }
    fields.update(overrides)
    return make_phase(**fields)


class TestDateWindow:
    def test_window_includes_buffer(self) -> None:
        window = DateWindow.of(date(2025, 2, 3), 5, 1)
        assert window == DateWindow(date(2025, 2, 3), date(2025, 2, 11))

    def test_contains_is_inclusive(self) -> None:
        outer = DateWindow(date(2025, 2, 1), date(2025, 2, 14))
        assert outer.contains(outer)
        assert not outer.contains(DateWindow(date(2025, 1, 31), date(2025, 2, 3)))

    def test_window_of_mapping(self) -> None:
        window = window_of({"planned_start_date": "2025-02-03", "planned_duration_days": 2})
        assert window.end == date(2025, 2, 5)


class TestValidateTaskDates:
    def test_task_inside_phase_is_valid(self) -> None:
        phase = make_phase()
        assert validate_task_dates(make_task(phase), phase) == []

    def test_task_ending_exactly_at_phase_end_is_valid(self) -> None:
        phase = make_phase()
        task = make_task(phase, planned_start_date=date(2025, 2, 10), planned_duration_days=4)
        assert validate_task_dates(task, phase) == []

    def test_start_before_phase(self) -> None:
        phase = make_phase()
        task = make_task(phase, planned_start_date=date(2025, 1, 31))
        errors = validate_task_dates(task, phase)
        assert errors == [
            "Task start date (2025-01-31) must be on or after phase start date (2025-02-01)"
        ]

    def test_buffer_pushes_end_past_phase(self) -> None:
        phase = make_phase()
        task = make_task(
            phase,
            planned_start_date=date(2025, 2, 10),
            planned_duration_days=4,
            buffer_days=1,
        )
        errors = validate_task_dates(task, phase)
        assert errors == [
            "Task end date (2025-02-17) must be on or before phase end date (2025-02-14)"
        ]

    def test_phase_buffer_widens_window(self) -> None:
        phase = make_phase(buffer_days=1)
        task = make_task(
            phase,
            planned_start_date=date(2025, 2, 10),
            planned_duration_days=4,
            buffer_days=1,
        )
        assert validate_task_dates(task, phase) == []

    def test_both_violations_reported(self) -> None:
        phase = make_phase(planned_duration_days=2)
        task = make_task(phase, planned_start_date=date(2025, 1, 30), planned_duration_days=8)
        assert len(validate_task_dates(task, phase)) == 2

    def test_zero_duration_rejected(self) -> None:
        phase = make_phase()
        errors = validate_task_dates(make_task(phase, planned_duration_days=0), phase)
        assert errors == ["Task duration must be at least 1 day"]

    def test_missing_start_rejected(self) -> None:
        phase = make_phase()
        errors = validate_task_dates({"planned_duration_days": 2}, phase)
        assert errors == ["Task start date is required"]

    def test_overlapping_siblings_allowed(self) -> None:
        phase = make_phase()
        first = make_task(phase)
        second = make_task(phase)
        assert validate_task_dates(first, phase) == []
        assert validate_task_dates(second, phase) == []


class TestValidatePhaseWindow:
    def test_shrinking_phase_reports_task(self) -> None:
        phase = make_phase()
        task = make_task(phase, planned_start_date=date(2025, 2, 10), planned_duration_days=3)
        errors = validate_phase_window(
            {"planned_start_date": PHASE_START, "planned_duration_days": 5, "buffer_days": 0},
            [task],
        )
        assert len(errors) == 1
        assert "Pour footings" in errors[0]

    def test_moving_start_past_task_reports_task(self) -> None:
        phase = make_phase()
        errors = validate_phase_window(
            {"planned_start_date": date(2025, 2, 4), "planned_duration_days": 10, "buffer_days": 0},
            [make_task(phase)],
        )
        assert len(errors) == 1

    def test_growing_phase_is_fine(self) -> None:
        phase = make_phase()
        errors = validate_phase_window(
            {"planned_start_date": PHASE_START, "planned_duration_days": 20, "buffer_days": 0},
            [make_task(phase)],
        )
        assert errors == []


class TestHierarchyShape:
    def test_task_requires_parent(self) -> None:
        with pytest.raises(ValidationError):
            ensure_hierarchy(is_task=True, parent_phase_id=None)

    def test_phase_must_not_have_parent(self) -> None:
        with pytest.raises(ValidationError):
            ensure_hierarchy(is_task=False, parent_phase_id=uuid4())

    def test_valid_shapes(self) -> None:
        ensure_hierarchy(is_task=True, parent_phase_id=uuid4())
        ensure_hierarchy(is_task=False, parent_phase_id=None)

    def test_task_cannot_parent_task(self) -> None:
        phase = make_phase()
        with pytest.raises(ValidationError, match="Cannot create tasks under another task"):
            ensure_task_parent(make_task(phase))

    def test_parent_in_other_project(self) -> None:
        with pytest.raises(ValidationError, match="same project"):
            ensure_task_parent(make_phase(), project_id=uuid4())


class TestPhaseTree:
    def test_groups_tasks_under_phases(self) -> None:
        foundation = make_phase(name="Foundation")
        framing = make_phase(name="Framing")
        items = [
            foundation,
            make_task(foundation, planned_duration_days=3, status=PhaseStatus.completed),
            make_task(foundation, planned_duration_days=1),
            framing,
        ]

        tree = build_phase_tree(items)

        assert [node.phase.name for node in tree] == ["Foundation", "Framing"]
        assert len(tree[0].tasks) == 2
        assert tree[0].computed_progress == 75
        assert tree[1].tasks == []
        assert tree[1].computed_progress == 0

    def test_orphan_tasks_dropped(self) -> None:
        orphan = make_task(make_phase())
        assert build_phase_tree([orphan]) == []

    def test_tree_feeds_completion(self) -> None:
        done = make_phase(status=PhaseStatus.completed)
        half = make_phase()
        items = [
            done,
            half,
            make_task(half, planned_duration_days=2, status=PhaseStatus.completed),
            make_task(half, planned_duration_days=2),
        ]
        assert calculate_completion_percentage(build_phase_tree(items)) == 75
