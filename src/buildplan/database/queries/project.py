"""Project CRUD query functions for Buildplan.

Provides async functions for creating, reading, updating, and deleting
Project records using SQLAlchemy 2.0 select() API.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildplan.database.models.phase import Phase
from buildplan.database.models.project import Project, ProjectStatus
from buildplan.errors import NotFoundError

logger = structlog.get_logger(__name__)


async def create_project(
    session: AsyncSession,
    name: str,
    organization_id: str | None = None,
    slug: str | None = None,
    description: str | None = None,
    status: ProjectStatus = ProjectStatus.planning,
) -> Project:
    """Create a new project.

    Args:
        session: Active async database session.
        name: Human-readable project name.
        organization_id: Owning tenant.
        slug: URL-friendly identifier.
        description: Optional free text.
        status: Initial lifecycle status.

    Returns:
        The newly created Project instance.
    """
    project = Project(
        name=name,
        organization_id=organization_id,
        slug=slug,
        description=description,
        status=status,
    )

    session.add(project)
    await session.commit()
    await session.refresh(project)

    logger.info(
        "project_created",
        project_id=str(project.id),
        organization_id=organization_id,
        name=name,
        status=project.status.value,
    )

    return project


async def get_project(
    session: AsyncSession,
    project_id: UUID,
) -> Project | None:
    """Retrieve a project by ID.

    Args:
        session: Active async database session.
        project_id: UUID of the project to retrieve.

    Returns:
        The Project instance if found, None otherwise.
    """
    stmt = (
        select(Project)
        .where(Project.id == project_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_projects(
    session: AsyncSession,
    organization_id: str | None = None,
    status_filter: ProjectStatus | None = None,
) -> list[Project]:
    """List projects, optionally filtered by tenant and status.

    Args:
        session: Active async database session.
        organization_id: Optional tenant to filter by.
        status_filter: Optional status to filter by.

    Returns:
        List of matching Project instances, newest first.
    """
    stmt = select(Project)

    if organization_id is not None:
        stmt = stmt.where(Project.organization_id == organization_id)

    if status_filter is not None:
        stmt = stmt.where(Project.status == status_filter)

    stmt = stmt.order_by(Project.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_project(
    session: AsyncSession,
    project_id: UUID,
    **updates: Any,
) -> Project:
    """Update a project's fields.

    Args:
        session: Active async database session.
        project_id: UUID of the project to update.
        **updates: Field names and values to update.

    Returns:
        The updated Project instance.

    Raises:
        NotFoundError: If project not found.
    """
    project = await get_project(session, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)

    for field, value in updates.items():
        setattr(project, field, value)

    await session.commit()
    await session.refresh(project)

    logger.info(
        "project_updated",
        project_id=str(project_id),
        fields_updated=list(updates.keys()),
    )

    return project


async def delete_project(
    session: AsyncSession,
    project_id: UUID,
) -> bool:
    """Delete a project and all of its phases and tasks.

    Args:
        session: Active async database session.
        project_id: UUID of the project to delete.

    Returns:
        True if the project was deleted, False if not found.
    """
    await session.execute(
        delete(Phase)
        .where(Phase.project_id == project_id)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(delete(Project).where(Project.id == project_id))
    await session.commit()

    deleted = result.rowcount > 0

    if deleted:
        logger.info("project_deleted", project_id=str(project_id))
    else:
        logger.warning("project_not_found", project_id=str(project_id))

    return deleted
