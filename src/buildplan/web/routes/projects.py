"""Project endpoints for Buildplan.

This module provides REST API endpoints for managing Project resources and
the project-level scheduling views:
- CRUD on projects, scoped to the X-Organization-ID tenant when sent
- Duration, completion and schedule status metrics
- Setting and clearing the schedule baseline
- Listing and creating the phases of a project

Example:
    >>> from fastapi import FastAPI
    >>> from buildplan.web.routes.projects import create_projects_router
    >>>
    >>> app = FastAPI()
    >>> app.include_router(create_projects_router())
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi import status as http_status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buildplan.config import SchedulingConfig
from buildplan.database.models.project import ProjectStatus
from buildplan.database.queries import project as project_queries
from buildplan.errors import NotFoundError, ValidationError
from buildplan.logging import get_logger
from buildplan.scheduling.metrics import ScheduleState
from buildplan.scheduling.service import PhaseService
from buildplan.web.dependencies import (
    get_organization_id,
    get_scheduling_config,
    get_session_factory,
    http_error,
)
from buildplan.web.routes.phases import PhaseResponse, PhaseTreeResponse

logger = get_logger(__name__)


class ProjectCreate(BaseModel):
    """Request schema for creating a new project."""

    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(default=None, max_length=255)
    description: str | None = None
    status: ProjectStatus = ProjectStatus.planning


class ProjectUpdate(BaseModel):
    """Request schema for updating an existing project.

    All fields are optional. Only provided fields will be updated.
    """

    name: str | None = Field(default=None, min_length=1, max_length=255)
    slug: str | None = None
    description: str | None = None
    status: ProjectStatus | None = None


class ProjectResponse(BaseModel):
    """Response schema for project data."""

    id: UUID
    organization_id: str | None
    name: str
    slug: str | None
    description: str | None
    status: ProjectStatus
    baseline_start_date: date | None
    baseline_duration_days: int | None
    baseline_set_date: date | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ScheduleStatusResponse(BaseModel):
    status: ScheduleState
    message: str
    days_off: int | None


class ProjectMetricsResponse(BaseModel):
    """Project duration, completion and schedule status."""

    project_id: UUID
    total_days: int
    start_date: date | None
    end_date: date | None
    date_range: str
    completion_percentage: int
    schedule_status: ScheduleStatusResponse
    phases: list[PhaseTreeResponse]


def create_projects_router() -> APIRouter:
    """Create projects router.

    Routes:
        GET /projects/ - List projects with optional status filter
        POST /projects/ - Create project
        GET /projects/{project_id} - Get project by ID
        PUT /projects/{project_id} - Update project
        DELETE /projects/{project_id} - Delete project with its phases
        GET /projects/{project_id}/metrics - Duration, completion, schedule status
        POST /projects/{project_id}/baseline - Freeze current schedule as baseline
        DELETE /projects/{project_id}/baseline - Clear baseline
        GET /projects/{project_id}/phases - List phases and tasks
        POST /projects/{project_id}/phases - Create a top-level phase
    """
    router = APIRouter(prefix="/projects", tags=["projects"])

    @router.get("/", response_model=list[ProjectResponse])
    async def list_projects(
        status: str | None = None,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> list[ProjectResponse]:
        """List projects with optional status filter.

        Raises:
            HTTPException: 400 if status filter is invalid
        """
        status_enum = None
        if status is not None:
            try:
                status_enum = ProjectStatus(status)
            except ValueError:
                logger.warning(
                    "invalid_status_filter",
                    status=status,
                    valid_values=[s.value for s in ProjectStatus],
                )
                raise HTTPException(
                    status_code=http_status.HTTP_400_BAD_REQUEST,
                    detail=f"Invalid status: {status}. Valid values: {[s.value for s in ProjectStatus]}",
                ) from None

        async with session_factory() as session:
            projects = await project_queries.list_projects(
                session=session,
                organization_id=organization_id,
                status_filter=status_enum,
            )

        logger.info("projects_listed", count=len(projects), status_filter=status)
        return [ProjectResponse.model_validate(p) for p in projects]

    @router.post("/", response_model=ProjectResponse, status_code=http_status.HTTP_201_CREATED)
    async def create_project(
        project_data: ProjectCreate,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> ProjectResponse:
        """Create a new project owned by the requesting organization."""
        async with session_factory() as session:
            project = await project_queries.create_project(
                session=session,
                name=project_data.name,
                organization_id=organization_id,
                slug=project_data.slug,
                description=project_data.description,
                status=project_data.status,
            )

        logger.info("project_created_via_api", project_id=str(project.id))
        return ProjectResponse.model_validate(project)

    @router.get("/{project_id}", response_model=ProjectResponse)
    async def get_project(
        project_id: UUID,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> ProjectResponse:
        """Get a project by ID.

        Raises:
            HTTPException: 404 if project not found
        """
        try:
            async with session_factory() as session:
                project = await PhaseService(session).get_project(project_id, organization_id)
        except NotFoundError as exc:
            logger.warning("project_not_found", project_id=str(project_id))
            raise http_error(exc) from exc

        return ProjectResponse.model_validate(project)

    @router.put("/{project_id}", response_model=ProjectResponse)
    async def update_project(
        project_id: UUID,
        project_data: ProjectUpdate,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> ProjectResponse:
        """Update an existing project.

        Only fields provided in the request body will be updated.

        Raises:
            HTTPException: 404 if project not found, 400 if nothing to update
        """
        updates: dict[str, Any] = project_data.model_dump(exclude_unset=True)
        if updates.get("name", "") is None or updates.get("status", "") is None:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail="name and status cannot be null",
            )
        if not updates:
            logger.warning("no_updates_provided", project_id=str(project_id))
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail="No fields to update",
            )

        try:
            async with session_factory() as session:
                await PhaseService(session).get_project(project_id, organization_id)
                project = await project_queries.update_project(
                    session=session,
                    project_id=project_id,
                    **updates,
                )
        except NotFoundError as exc:
            logger.warning("project_not_found_for_update", project_id=str(project_id))
            raise http_error(exc) from exc

        logger.info(
            "project_updated_via_api",
            project_id=str(project_id),
            fields_updated=list(updates.keys()),
        )
        return ProjectResponse.model_validate(project)

    @router.delete("/{project_id}", status_code=http_status.HTTP_204_NO_CONTENT)
    async def delete_project(
        project_id: UUID,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> None:
        """Delete a project together with its phases and tasks.

        Raises:
            HTTPException: 404 if project not found
        """
        try:
            async with session_factory() as session:
                await PhaseService(session).get_project(project_id, organization_id)
                await project_queries.delete_project(session=session, project_id=project_id)
        except NotFoundError as exc:
            logger.warning("project_not_found_for_deletion", project_id=str(project_id))
            raise http_error(exc) from exc

        logger.info("project_deleted_via_api", project_id=str(project_id))

    @router.get("/{project_id}/metrics", response_model=ProjectMetricsResponse)
    async def get_project_metrics(
        project_id: UUID,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
        config: SchedulingConfig = Depends(get_scheduling_config),  # noqa: B008
    ) -> ProjectMetricsResponse:
        """Duration, completion percentage and schedule status of a project."""
        try:
            async with session_factory() as session:
                metrics = await PhaseService(session, config).get_project_metrics(
                    project_id, organization_id
                )
        except NotFoundError as exc:
            raise http_error(exc) from exc

        return ProjectMetricsResponse(
            project_id=project_id,
            total_days=metrics.duration.total_days,
            start_date=metrics.duration.start_date,
            end_date=metrics.duration.end_date,
            date_range=metrics.date_range,
            completion_percentage=metrics.completion_percentage,
            schedule_status=ScheduleStatusResponse(
                status=metrics.schedule_status.status,
                message=metrics.schedule_status.message,
                days_off=metrics.schedule_status.days_off,
            ),
            phases=[PhaseTreeResponse.model_validate(node) for node in metrics.phases],
        )

    @router.post("/{project_id}/baseline", response_model=ProjectResponse)
    async def set_baseline(
        project_id: UUID,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> ProjectResponse:
        """Freeze the current start date and duration as the project baseline.

        Raises:
            HTTPException: 400 if the project has no phases, 404 if not found
        """
        try:
            async with session_factory() as session:
                project = await PhaseService(session).set_baseline(project_id, organization_id)
        except (ValidationError, NotFoundError) as exc:
            raise http_error(exc) from exc

        return ProjectResponse.model_validate(project)

    @router.delete("/{project_id}/baseline", response_model=ProjectResponse)
    async def clear_baseline(
        project_id: UUID,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> ProjectResponse:
        """Remove the project baseline."""
        try:
            async with session_factory() as session:
                project = await PhaseService(session).clear_baseline(project_id, organization_id)
        except NotFoundError as exc:
            raise http_error(exc) from exc

        return ProjectResponse.model_validate(project)

    @router.get("/{project_id}/phases", response_model=list[PhaseResponse] | list[PhaseTreeResponse])
    async def list_phases(
        project_id: UUID,
        is_task: bool | None = None,
        tree: bool = False,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> list[PhaseResponse] | list[PhaseTreeResponse]:
        """List a project's phases and tasks in sequence order.

        Args:
            is_task: Only tasks (true) or only phases (false); both when omitted.
            tree: Group tasks under their phases, with computed progress.
        """
        try:
            async with session_factory() as session:
                service = PhaseService(session)
                if tree:
                    nodes = await service.get_phases_with_tasks(project_id, organization_id)
                else:
                    items = await service.list_project_phases(
                        project_id, organization_id, is_task=is_task
                    )
        except NotFoundError as exc:
            raise http_error(exc) from exc

        if tree:
            return [PhaseTreeResponse.model_validate(node) for node in nodes]
        return [PhaseResponse.model_validate(item) for item in items]

    @router.post(
        "/{project_id}/phases",
        response_model=PhaseResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def create_phase(
        project_id: UUID,
        payload: dict[str, Any] = Body(...),  # noqa: B008
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
        organization_id: str | None = Depends(get_organization_id),  # noqa: B008
    ) -> PhaseResponse:
        """Create a top-level phase in a project.

        Raises:
            HTTPException: 400 on validation failure, 404 if not found
        """
        try:
            async with session_factory() as session:
                phase = await PhaseService(session).create_phase(
                    project_id, payload, organization_id
                )
        except (ValidationError, NotFoundError) as exc:
            logger.warning("phase_creation_rejected", project_id=str(project_id), error=str(exc))
            raise http_error(exc) from exc

        logger.info("phase_created_via_api", phase_id=str(phase.id), project_id=str(project_id))
        return PhaseResponse.model_validate(phase)

    return router
