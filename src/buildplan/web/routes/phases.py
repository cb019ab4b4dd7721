"""Phase and task endpoints for Buildplan.

Phases and tasks share one resource: a task is a phase with is_task set and
a parent_phase_id. Task writes answer with the written entity plus the
outcome of the parent phase recalculation they triggered.

Routes:
    GET    /phases/{phase_id}
    PATCH  /phases/{phase_id}
    DELETE /phases/{phase_id}
    PATCH  /phases/{phase_id}/status
    POST   /phases/{phase_id}/tasks
    POST   /phases/{phase_id}/recalculate-duration
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends
from fastapi import status as http_status
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from buildplan.config import SchedulingConfig
from buildplan.database.models.phase import DurationMode, PhaseStatus
from buildplan.errors import NotFoundError, ValidationError
from buildplan.logging import get_logger
from buildplan.scheduling.recalculation import PhaseDurationCalculation, TaskTimelineEntry
from buildplan.scheduling.service import MutationResult, PhaseService, RecalculationOutcome
from buildplan.web.dependencies import (
    get_organization_id,
    get_scheduling_config,
    get_session_factory,
    http_error,
)

logger = get_logger(__name__)

DOMAIN_ERRORS = (ValidationError, NotFoundError, StaleDataError)


# --- Response schemas ---


class PhaseResponse(BaseModel):
    """A phase or task as returned by the API."""

    id: UUID
    project_id: UUID
    name: str
    description: str | None
    sequence_order: int
    planned_start_date: date
    planned_duration_days: int
    buffer_days: int
    planned_end_date: date | None
    actual_start_date: date | None
    actual_end_date: date | None
    status: PhaseStatus
    predecessor_phase_id: UUID | None
    parent_phase_id: UUID | None
    is_task: bool
    color: str
    duration_mode: DurationMode
    metadata: dict[str, Any] = Field(validation_alias=AliasChoices("metadata_", "metadata"))
    calculated_duration_days: int | None
    last_calculated_at: datetime | None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PhaseTreeResponse(BaseModel):
    """A top-level phase with its tasks and duration-weighted progress."""

    phase: PhaseResponse
    tasks: list[PhaseResponse]
    computed_progress: int

    model_config = {"from_attributes": True}


class TaskTimelineResponse(BaseModel):
    task_id: UUID
    task_name: str
    start_date: date
    end_date: date
    duration_days: int
    buffer_days: int
    sequence_order: int
    offset_days: int


class CalculationResponse(BaseModel):
    """Breakdown of a phase duration recalculation."""

    phase_id: UUID
    phase_start_date: date
    previous_duration_days: int
    calculated_duration_days: int | None
    applied: bool
    skip_reason: str | None
    driving_task_id: UUID | None
    earliest_task_start: date | None
    latest_task_end: date | None
    suggested_end_date: date | None
    task_timeline: list[TaskTimelineResponse]
    has_overlapping_tasks: bool
    has_gaps: bool
    total_gap_days: int

    @classmethod
    def from_calculation(cls, calculation: PhaseDurationCalculation) -> CalculationResponse:
        return cls(
            **{
                name: getattr(calculation, name)
                for name in cls.model_fields
                if name != "task_timeline"
            },
            task_timeline=[_timeline_entry(e) for e in calculation.task_timeline],
        )


class RecalculationOutcomeResponse(BaseModel):
    """Outcome of the best-effort recalculation a task write triggered."""

    phase_id: UUID
    succeeded: bool
    error: str | None = None
    calculation: CalculationResponse | None = None


class MutationResponse(BaseModel):
    """Written entity plus the parent recalculation it triggered, if any."""

    data: PhaseResponse
    recalculation: RecalculationOutcomeResponse | None = None


class RecalculateRequest(BaseModel):
    force_update: bool = False


class RecalculateResponse(BaseModel):
    data: PhaseResponse
    calculation: CalculationResponse


def _timeline_entry(entry: TaskTimelineEntry) -> TaskTimelineResponse:
    return TaskTimelineResponse(
        **{name: getattr(entry, name) for name in TaskTimelineResponse.model_fields}
    )


def outcome_response(outcome: RecalculationOutcome | None) -> RecalculationOutcomeResponse | None:
    """Serialize a recalculation outcome for the API."""
    if outcome is None:
        return None
    return RecalculationOutcomeResponse(
        phase_id=outcome.phase_id,
        succeeded=outcome.succeeded,
        error=str(outcome.error.cause) if outcome.error is not None else None,
        calculation=(
            CalculationResponse.from_calculation(outcome.result.calculation)
            if outcome.result is not None
            else None
        ),
    )


def mutation_response(result: MutationResult) -> MutationResponse:
    return MutationResponse(
        data=PhaseResponse.model_validate(result.entity),
        recalculation=outcome_response(result.recalculation),
    )


# --- Router ---


def create_phases_router() -> APIRouter:
    """Create the phases/tasks router.

    Returns:
        Configured APIRouter mounted at /phases.
    """
    router = APIRouter(prefix="/phases", tags=["phases"])

    @router.get("/{phase_id}", response_model=PhaseResponse)
    async def get_phase(
        phase_id: UUID,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> PhaseResponse:
        """Get a phase or task by ID."""
        try:
            async with session_factory() as session:
                phase = await PhaseService(session).get_entity(phase_id, organization_id)
        except DOMAIN_ERRORS as exc:
            logger.warning("phase_not_found", phase_id=str(phase_id))
            raise http_error(exc) from exc

        return PhaseResponse.model_validate(phase)

    @router.patch("/{phase_id}", response_model=MutationResponse)
    async def update_phase(
        phase_id: UUID,
        payload: dict[str, Any] = Body(...),  # noqa: B008
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
        config: SchedulingConfig = Depends(get_scheduling_config),  # noqa: B008
    ) -> MutationResponse:
        """Partially update a phase or task.

        Only the fields present in the body are applied; explicit nulls clear
        nullable fields.

        Raises:
            HTTPException: 400 on validation failure, 404 if not visible,
                409 on a concurrent modification.
        """
        try:
            async with session_factory() as session:
                result = await PhaseService(session, config).update_entity(
                    phase_id, payload, organization_id
                )
        except DOMAIN_ERRORS as exc:
            logger.warning("phase_update_rejected", phase_id=str(phase_id), error=str(exc))
            raise http_error(exc) from exc

        logger.info(
            "phase_updated_via_api",
            phase_id=str(phase_id),
            fields_updated=sorted(payload.keys()),
        )
        return mutation_response(result)

    @router.patch("/{phase_id}/status", response_model=PhaseResponse)
    async def update_phase_status(
        phase_id: UUID,
        payload: dict[str, Any] = Body(...),  # noqa: B008
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> PhaseResponse:
        """Change the status of a phase or task.

        Moving to in_progress stamps actual_start_date and moving to
        completed stamps actual_end_date, unless the body supplies them.
        """
        try:
            async with session_factory() as session:
                phase = await PhaseService(session).update_status(
                    phase_id, payload, organization_id
                )
        except DOMAIN_ERRORS as exc:
            logger.warning("phase_status_update_rejected", phase_id=str(phase_id), error=str(exc))
            raise http_error(exc) from exc

        logger.info("phase_status_updated_via_api", phase_id=str(phase_id), status=phase.status.value)
        return PhaseResponse.model_validate(phase)

    @router.delete("/{phase_id}", response_model=RecalculationOutcomeResponse | None)
    async def delete_phase(
        phase_id: UUID,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> RecalculationOutcomeResponse | None:
        """Delete a phase (with its tasks) or a task.

        Returns:
            The parent recalculation outcome when a task was deleted, null
            otherwise.
        """
        try:
            async with session_factory() as session:
                outcome = await PhaseService(session).delete_entity(phase_id, organization_id)
        except DOMAIN_ERRORS as exc:
            logger.warning("phase_not_found_for_deletion", phase_id=str(phase_id))
            raise http_error(exc) from exc

        logger.info("phase_deleted_via_api", phase_id=str(phase_id))
        return outcome_response(outcome)

    @router.post(
        "/{phase_id}/tasks",
        response_model=MutationResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def create_task(
        phase_id: UUID,
        payload: dict[str, Any] = Body(...),  # noqa: B008
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
        config: SchedulingConfig = Depends(get_scheduling_config),  # noqa: B008
    ) -> MutationResponse:
        """Create a task under a phase and recalculate the phase duration.

        Raises:
            HTTPException: 400 if the task does not fit the phase window or
                the parent is itself a task, 404 if the phase is not visible.
        """
        try:
            async with session_factory() as session:
                result = await PhaseService(session, config).create_task(
                    phase_id, payload, organization_id
                )
        except DOMAIN_ERRORS as exc:
            logger.warning("task_creation_rejected", parent_phase_id=str(phase_id), error=str(exc))
            raise http_error(exc) from exc

        logger.info(
            "task_created_via_api",
            task_id=str(result.entity.id),
            parent_phase_id=str(phase_id),
        )
        return mutation_response(result)

    @router.post("/{phase_id}/recalculate-duration", response_model=RecalculateResponse)
    async def recalculate_duration(
        phase_id: UUID,
        request_data: RecalculateRequest | None = None,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> RecalculateResponse:
        """Recalculate a phase's duration from its tasks.

        Phases in override mode are left untouched unless force_update is
        set. The response carries the full calculation breakdown.
        """
        force_update = request_data.force_update if request_data is not None else False
        try:
            async with session_factory() as session:
                result = await PhaseService(session).recalculate(
                    phase_id, force_update=force_update, organization_id=organization_id
                )
        except DOMAIN_ERRORS as exc:
            logger.warning("phase_recalculation_rejected", phase_id=str(phase_id), error=str(exc))
            raise http_error(exc) from exc

        return RecalculateResponse(
            data=PhaseResponse.model_validate(result.phase),
            calculation=CalculationResponse.from_calculation(result.calculation),
        )

    return router
