"""Phase and task operations exposed to the HTTP and CLI layers.

PhaseService ties the hierarchy rules, the repository and the recalculation
engine together:

- Validation (input shape, hierarchy, date containment) runs before any
  write and aborts the operation on failure.
- After a task is created, has its dates changed, or is deleted, the parent
  phase is recalculated on a best-effort basis. A failed recalculation is
  logged and returned in the MutationResult; the write itself stands.
- Manually editing a phase's duration or buffer switches it to override
  mode in the same write, so later task changes do not clobber the edit.

Every public method accepts an optional organization_id. When given, entities
belonging to another tenant are reported as not found.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any, TypeVar
from uuid import UUID

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from buildplan.config import SchedulingConfig
from buildplan.database.models.phase import DurationMode, Phase, PhaseStatus
from buildplan.database.models.project import Project
from buildplan.database.queries import phase as phase_queries
from buildplan.database.queries import project as project_queries
from buildplan.database.queries.phase import DATE_FIELDS
from buildplan.errors import NotFoundError, ParseError, RecalculationFailure, ValidationError
from buildplan.logging import log_error
from buildplan.scheduling.calendar import format_date_range
from buildplan.scheduling.hierarchy import (
    PhaseWithTasks,
    build_phase_tree,
    ensure_hierarchy,
    ensure_task_parent,
    validate_phase_window,
    validate_task_dates,
)
from buildplan.scheduling.metrics import (
    ProjectDuration,
    ScheduleStatus,
    calculate_completion_percentage,
    calculate_project_duration,
    get_schedule_status,
)
from buildplan.scheduling.recalculation import RecalculationResult, recalculate_phase_duration
from buildplan.scheduling.schemas import PhaseCreate, PhaseUpdate, StatusUpdate, TaskCreate

logger = structlog.get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

# Manual edits to these switch an auto phase to override mode
MANUAL_DURATION_FIELDS = frozenset({"planned_duration_days", "buffer_days"})


@dataclass(frozen=True)
class RecalculationOutcome:
    """Result of a best-effort recalculation triggered by a task write."""

    phase_id: UUID
    result: RecalculationResult | None = None
    error: RecalculationFailure | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class MutationResult:
    """The written entity plus the parent recalculation it triggered, if any."""

    entity: Phase
    recalculation: RecalculationOutcome | None = None


@dataclass(frozen=True)
class ProjectMetrics:
    """Read-side summary used by dashboards and project detail views."""

    project: Project
    phases: list[PhaseWithTasks]
    duration: ProjectDuration
    completion_percentage: int
    schedule_status: ScheduleStatus

    @property
    def date_range(self) -> str:
        return format_date_range(self.duration.start_date, self.duration.end_date)


def parse_input(schema: type[SchemaT], data: Mapping[str, Any] | SchemaT) -> SchemaT:
    """Validate raw input against a schema, raising Buildplan errors.

    Raises:
        ParseError: If a date field could not be parsed.
        ValidationError: For any other shape problem.
    """
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        messages = []
        for error in exc.errors():
            cause = (error.get("ctx") or {}).get("error")
            if isinstance(cause, ParseError):
                raise cause from None
            location = ".".join(str(part) for part in error["loc"])
            messages.append(f"{location}: {error['msg']}" if location else error["msg"])
        raise ValidationError(messages) from None


class PhaseService:
    """Scheduling operations bound to one database session.

    Attributes:
        session: The request-scoped async session.
        config: Scheduling settings (default task duration, variance ratio).
    """

    def __init__(self, session: AsyncSession, config: SchedulingConfig | None = None):
        self.session = session
        self.config = config or SchedulingConfig()
        self.logger = logger.bind(component="PhaseService")

    # --- Lookups ---

    async def get_project(self, project_id: UUID, organization_id: str | None = None) -> Project:
        """Load a project visible to the tenant.

        Raises:
            NotFoundError: If missing or owned by another organization.
        """
        project = await project_queries.get_project(self.session, project_id)
        if project is None or (
            organization_id is not None and project.organization_id != organization_id
        ):
            raise NotFoundError("Project", project_id)
        return project

    async def get_entity(self, entity_id: UUID, organization_id: str | None = None) -> Phase:
        """Load a phase or task visible to the tenant.

        Raises:
            NotFoundError: If missing or owned by another organization.
        """
        entity = await phase_queries.get_phase(self.session, entity_id)
        if entity is None:
            raise NotFoundError("Phase", entity_id)
        if organization_id is not None:
            project = await project_queries.get_project(self.session, entity.project_id)
            if project is None or project.organization_id != organization_id:
                raise NotFoundError("Phase", entity_id)
        return entity

    async def list_project_phases(
        self,
        project_id: UUID,
        organization_id: str | None = None,
        is_task: bool | None = None,
    ) -> list[Phase]:
        """Flat listing of a project's phases and/or tasks in sequence order."""
        await self.get_project(project_id, organization_id)
        return await phase_queries.list_phases(self.session, project_id, is_task=is_task)

    async def get_phases_with_tasks(
        self,
        project_id: UUID,
        organization_id: str | None = None,
    ) -> list[PhaseWithTasks]:
        """Phases grouped with their tasks and read-time computed_progress."""
        items = await self.list_project_phases(project_id, organization_id)
        return build_phase_tree(items)

    # --- Mutations ---

    async def create_phase(
        self,
        project_id: UUID,
        data: Mapping[str, Any] | PhaseCreate,
        organization_id: str | None = None,
    ) -> Phase:
        """Create a top-level phase in a project.

        Raises:
            NotFoundError: If the project (or predecessor) is not visible.
            ValidationError: If the input is malformed.
        """
        await self.get_project(project_id, organization_id)
        if isinstance(data, Mapping):
            is_task = bool(data.get("is_task", False))
            ensure_hierarchy(is_task=is_task, parent_phase_id=data.get("parent_phase_id"))
            if is_task:
                raise ValidationError("Tasks must be created under their parent phase")
        fields = parse_input(PhaseCreate, _strip_hierarchy(data)).model_dump()
        await self._check_predecessor(fields.get("predecessor_phase_id"), project_id, None)

        phase = await phase_queries.create_phase(
            self.session,
            project_id=project_id,
            is_task=False,
            parent_phase_id=None,
            **fields,
        )
        return phase

    async def create_task(
        self,
        parent_phase_id: UUID,
        data: Mapping[str, Any] | TaskCreate,
        organization_id: str | None = None,
    ) -> MutationResult:
        """Create a task under a phase, then recalculate the phase.

        Raises:
            NotFoundError: If the parent phase is not visible.
            ValidationError: If the input is malformed, the parent is a task,
                or the task's window falls outside the parent's window.
        """
        parent = await self.get_entity(parent_phase_id, organization_id)
        ensure_task_parent(parent)

        payload = parse_input(TaskCreate, _strip_hierarchy(data))
        if payload.planned_duration_days is None:
            payload = payload.model_copy(
                update={"planned_duration_days": self.config.default_task_duration_days}
            )

        errors = validate_task_dates(payload, parent)
        if errors:
            raise ValidationError(errors)

        fields = payload.model_dump()
        await self._check_predecessor(fields.get("predecessor_phase_id"), parent.project_id, None)

        task = await phase_queries.create_phase(
            self.session,
            project_id=parent.project_id,
            is_task=True,
            parent_phase_id=parent.id,
            **fields,
        )

        return await self._with_recalculation(task, parent.id, trigger="task_created")

    async def update_entity(
        self,
        entity_id: UUID,
        data: Mapping[str, Any] | PhaseUpdate,
        organization_id: str | None = None,
    ) -> MutationResult:
        """Apply a partial update to a phase or a task.

        Tasks: date changes are validated against the parent window before
        the write, and trigger a best-effort parent recalculation after it.

        Phases: editing planned_duration_days or buffer_days while in auto
        mode flips the phase to override. Date changes are rejected if any
        current task would fall outside the new window.

        Raises:
            NotFoundError: If the entity is not visible.
            ValidationError: If the input is malformed or breaks containment.
        """
        current = await self.get_entity(entity_id, organization_id)
        if isinstance(data, Mapping) and {"is_task", "parent_phase_id", "project_id"} & data.keys():
            raise ValidationError("The hierarchy position of a phase or task cannot be changed")
        changes = parse_input(PhaseUpdate, data).changes()
        if not changes:
            raise ValidationError("No fields to update")

        if "predecessor_phase_id" in changes:
            await self._check_predecessor(
                changes["predecessor_phase_id"], current.project_id, current.id
            )

        dates_changed = bool(DATE_FIELDS & changes.keys())
        candidate = {
            "planned_start_date": current.planned_start_date,
            "planned_duration_days": current.planned_duration_days,
            "buffer_days": current.buffer_days,
            **{k: v for k, v in changes.items() if k in DATE_FIELDS},
        }

        if current.is_task:
            if dates_changed:
                parent = await phase_queries.get_phase(self.session, current.parent_phase_id)
                if parent is None:
                    raise NotFoundError("Phase", current.parent_phase_id)
                errors = validate_task_dates(candidate, parent)
                if errors:
                    raise ValidationError(errors)

            task = await phase_queries.update_phase(self.session, entity_id, **changes)

            if not dates_changed:
                return MutationResult(entity=task)
            return await self._with_recalculation(
                task, current.parent_phase_id, trigger="task_updated"
            )

        if dates_changed:
            tasks = await phase_queries.list_tasks_of_phase(self.session, entity_id)
            errors = validate_phase_window(candidate, tasks)
            if errors:
                raise ValidationError(errors)

        if MANUAL_DURATION_FIELDS & changes.keys() and current.duration_mode == DurationMode.auto:
            changes["duration_mode"] = DurationMode.override
            self.logger.info(
                "duration_mode_overridden",
                phase_id=str(entity_id),
                fields=sorted(MANUAL_DURATION_FIELDS & changes.keys()),
            )

        phase = await phase_queries.update_phase(self.session, entity_id, **changes)
        return MutationResult(entity=phase)

    async def update_status(
        self,
        entity_id: UUID,
        data: Mapping[str, Any] | StatusUpdate,
        organization_id: str | None = None,
        today: date | None = None,
    ) -> Phase:
        """Change status, stamping actual dates on start and completion.

        Moving to in_progress sets actual_start_date, and moving to completed
        sets actual_end_date, to today unless explicit dates are supplied.
        Explicit dates are always applied.
        """
        await self.get_entity(entity_id, organization_id)
        payload = parse_input(StatusUpdate, data)
        today = today or date.today()

        updates: dict[str, Any] = {"status": payload.status}
        if payload.status == PhaseStatus.in_progress:
            updates["actual_start_date"] = payload.actual_start_date or today
        elif payload.actual_start_date is not None:
            updates["actual_start_date"] = payload.actual_start_date

        if payload.status == PhaseStatus.completed:
            updates["actual_end_date"] = payload.actual_end_date or today
        elif payload.actual_end_date is not None:
            updates["actual_end_date"] = payload.actual_end_date

        return await phase_queries.update_phase(self.session, entity_id, **updates)

    async def delete_entity(
        self,
        entity_id: UUID,
        organization_id: str | None = None,
    ) -> RecalculationOutcome | None:
        """Hard-delete a phase (with its tasks) or a task.

        Deleting a task recalculates its former parent on a best-effort basis.

        Returns:
            The parent recalculation outcome for tasks, None for phases.
        """
        current = await self.get_entity(entity_id, organization_id)
        parent_phase_id = current.parent_phase_id if current.is_task else None

        await phase_queries.delete_phase(self.session, entity_id)

        if parent_phase_id is None:
            return None
        return await self._recalculate_best_effort(parent_phase_id, trigger="task_deleted")

    async def recalculate(
        self,
        phase_id: UUID,
        force_update: bool = False,
        organization_id: str | None = None,
    ) -> RecalculationResult:
        """Explicitly recalculate a phase. Errors propagate to the caller."""
        await self.get_entity(phase_id, organization_id)
        return await recalculate_phase_duration(self.session, phase_id, force_update)

    # --- Project read side and baseline ---

    async def get_project_metrics(
        self,
        project_id: UUID,
        organization_id: str | None = None,
    ) -> ProjectMetrics:
        """Duration, completion and schedule status of a project."""
        project = await self.get_project(project_id, organization_id)
        items = await phase_queries.list_phases(self.session, project_id)
        tree = build_phase_tree(items)

        duration = calculate_project_duration(items)
        return ProjectMetrics(
            project=project,
            phases=tree,
            duration=duration,
            completion_percentage=calculate_completion_percentage(tree),
            schedule_status=get_schedule_status(
                project,
                items,
                duration,
                variance_ratio=self.config.schedule_variance_ratio,
            ),
        )

    async def set_baseline(
        self,
        project_id: UUID,
        organization_id: str | None = None,
        today: date | None = None,
    ) -> Project:
        """Freeze the project's current start date and duration as its baseline.

        Calling this on a project that already has a baseline replaces it.

        Raises:
            ValidationError: If the project has no phases to measure.
        """
        project = await self.get_project(project_id, organization_id)
        items = await phase_queries.list_phases(self.session, project_id, is_task=False)
        duration = calculate_project_duration(items)
        if duration.start_date is None:
            raise ValidationError("Cannot set a baseline for a project without phases")

        replaced = project.has_baseline
        project = await project_queries.update_project(
            self.session,
            project_id,
            baseline_start_date=duration.start_date,
            baseline_duration_days=duration.total_days,
            baseline_set_date=today or date.today(),
        )
        self.logger.info(
            "baseline_reset" if replaced else "baseline_set",
            project_id=str(project_id),
            baseline_start_date=duration.start_date.isoformat(),
            baseline_duration_days=duration.total_days,
        )
        return project

    async def clear_baseline(
        self,
        project_id: UUID,
        organization_id: str | None = None,
    ) -> Project:
        """Remove the project's baseline snapshot."""
        await self.get_project(project_id, organization_id)
        project = await project_queries.update_project(
            self.session,
            project_id,
            baseline_start_date=None,
            baseline_duration_days=None,
            baseline_set_date=None,
        )
        self.logger.info("baseline_cleared", project_id=str(project_id))
        return project

    # --- Internals ---

    async def _check_predecessor(
        self,
        predecessor_id: UUID | None,
        project_id: UUID,
        entity_id: UUID | None,
    ) -> None:
        if predecessor_id is None:
            return
        if predecessor_id == entity_id:
            raise ValidationError("A phase cannot be its own predecessor")
        predecessor = await phase_queries.get_phase(self.session, predecessor_id)
        if predecessor is None or predecessor.project_id != project_id:
            raise NotFoundError("Predecessor phase", predecessor_id)

    async def _with_recalculation(
        self, entity: Phase, phase_id: UUID, trigger: str
    ) -> MutationResult:
        entity_id = entity.id
        outcome = await self._recalculate_best_effort(phase_id, trigger)
        if not outcome.succeeded:
            # The rollback expired every loaded row
            entity = await phase_queries.get_phase(self.session, entity_id) or entity
        return MutationResult(entity=entity, recalculation=outcome)

    async def _recalculate_best_effort(self, phase_id: UUID, trigger: str) -> RecalculationOutcome:
        try:
            result = await recalculate_phase_duration(self.session, phase_id)
        except Exception as exc:  # noqa: BLE001 - recalculation must never fail the write
            failure = RecalculationFailure(phase_id, exc)
            try:
                await self.session.rollback()
            except Exception as rollback_exc:  # noqa: BLE001
                log_error("recalculation_rollback_failed", rollback_exc, phase_id=str(phase_id))
            log_error(
                "phase_recalculation_failed",
                failure,
                phase_id=str(phase_id),
                trigger=trigger,
            )
            return RecalculationOutcome(phase_id=phase_id, error=failure)

        return RecalculationOutcome(phase_id=phase_id, result=result)


def _strip_hierarchy(data: Mapping[str, Any] | BaseModel) -> Mapping[str, Any] | BaseModel:
    # Hierarchy fields are derived from the route, never taken from input
    if isinstance(data, Mapping):
        return {
            k: v for k, v in data.items()
            if k not in {"is_task", "parent_phase_id", "project_id"}
        }
    return data
