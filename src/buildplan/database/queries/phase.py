"""Phase and task query functions for Buildplan.

Phases and tasks live in the same table; these functions are the repository
boundary the scheduling engine talks to. Every read uses populate_existing
so that callers always see freshly committed state, never a stale object
from the session identity map.

Writes keep the cached planned_end_date in step with the start date,
duration and buffer. Updates go through the ORM so the phase version counter
is checked and bumped on every write.
"""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from buildplan.database.models.phase import DurationMode, Phase, PhaseStatus
from buildplan.errors import NotFoundError
from buildplan.scheduling.calendar import calculate_end_date

logger = structlog.get_logger(__name__)

# Fields whose change moves the effective end date
DATE_FIELDS = frozenset({"planned_start_date", "planned_duration_days", "buffer_days"})


async def create_phase(
    session: AsyncSession,
    project_id: UUID,
    name: str,
    planned_start_date: date,
    planned_duration_days: int = 0,
    buffer_days: int = 0,
    sequence_order: int = 1,
    description: str | None = None,
    status: PhaseStatus = PhaseStatus.not_started,
    actual_start_date: date | None = None,
    actual_end_date: date | None = None,
    predecessor_phase_id: UUID | None = None,
    parent_phase_id: UUID | None = None,
    is_task: bool = False,
    color: str = "gray",
    duration_mode: DurationMode = DurationMode.auto,
    metadata: dict[str, Any] | None = None,
) -> Phase:
    """Insert a phase or task row.

    No hierarchy checks happen here; callers validate before writing.

    Args:
        session: Active async database session.
        project_id: Owning project.
        name: Display name.
        planned_start_date: Planned first day.
        planned_duration_days: Planned length in business days.
        buffer_days: Slack in business days.
        sequence_order: Ordering within the project.
        description: Optional free text.
        status: Initial status.
        actual_start_date: Optional actual start.
        actual_end_date: Optional actual end.
        predecessor_phase_id: Optional ordering hint.
        parent_phase_id: Parent phase for tasks.
        is_task: True when inserting a task.
        color: Presentation tag.
        duration_mode: Initial duration mode.
        metadata: Custom key/value data.

    Returns:
        The newly created Phase instance.
    """
    phase = Phase(
        project_id=project_id,
        name=name,
        description=description,
        sequence_order=sequence_order,
        planned_start_date=planned_start_date,
        planned_duration_days=planned_duration_days,
        buffer_days=buffer_days,
        planned_end_date=calculate_end_date(
            planned_start_date, planned_duration_days, buffer_days
        ),
        actual_start_date=actual_start_date,
        actual_end_date=actual_end_date,
        status=status,
        predecessor_phase_id=predecessor_phase_id,
        parent_phase_id=parent_phase_id,
        is_task=is_task,
        color=color,
        duration_mode=duration_mode,
        metadata_=dict(metadata or {}),
    )

    session.add(phase)
    await session.commit()
    await session.refresh(phase)

    logger.info(
        "task_created" if is_task else "phase_created",
        phase_id=str(phase.id),
        project_id=str(project_id),
        parent_phase_id=str(parent_phase_id) if parent_phase_id else None,
        name=name,
        planned_end_date=phase.planned_end_date.isoformat() if phase.planned_end_date else None,
    )

    return phase


async def get_phase(
    session: AsyncSession,
    phase_id: UUID,
) -> Phase | None:
    """Retrieve a phase or task by ID.

    Args:
        session: Active async database session.
        phase_id: UUID of the row to retrieve.

    Returns:
        The Phase instance if found, None otherwise.
    """
    stmt = (
        select(Phase)
        .where(Phase.id == phase_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_phases(
    session: AsyncSession,
    project_id: UUID,
    is_task: bool | None = None,
) -> list[Phase]:
    """List the phases and/or tasks of a project.

    Args:
        session: Active async database session.
        project_id: Project to list.
        is_task: True for tasks only, False for phases only, None for both.

    Returns:
        Rows ordered by sequence_order, then creation time.
    """
    stmt = select(Phase).where(Phase.project_id == project_id)

    if is_task is not None:
        stmt = stmt.where(Phase.is_task.is_(is_task))

    stmt = stmt.order_by(Phase.sequence_order.asc(), Phase.created_at.asc())
    result = await session.execute(stmt.execution_options(populate_existing=True))
    return list(result.scalars().all())


async def list_tasks_of_phase(
    session: AsyncSession,
    phase_id: UUID,
) -> list[Phase]:
    """List the current tasks under a phase.

    Args:
        session: Active async database session.
        phase_id: Parent phase.

    Returns:
        Task rows ordered by sequence_order, then creation time.
    """
    stmt = (
        select(Phase)
        .where(Phase.parent_phase_id == phase_id)
        .where(Phase.is_task.is_(True))
        .order_by(Phase.sequence_order.asc(), Phase.created_at.asc())
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_phase(
    session: AsyncSession,
    phase_id: UUID,
    **updates: Any,
) -> Phase:
    """Update a phase or task's fields.

    The cached planned_end_date is recomputed whenever the start date,
    duration or buffer is part of the update. Pass metadata under the
    "metadata" key.

    Args:
        session: Active async database session.
        phase_id: UUID of the row to update.
        **updates: Field names and values to update.

    Returns:
        The updated Phase instance.

    Raises:
        NotFoundError: If the row does not exist.
        sqlalchemy.orm.exc.StaleDataError: If the row was modified concurrently.
    """
    phase = await get_phase(session, phase_id)
    if phase is None:
        raise NotFoundError("Phase", phase_id)

    for field, value in updates.items():
        if field == "metadata":
            phase.metadata_ = dict(value or {})
        else:
            setattr(phase, field, value)

    if DATE_FIELDS & updates.keys():
        phase.planned_end_date = calculate_end_date(
            phase.planned_start_date,
            phase.planned_duration_days,
            phase.buffer_days,
        )

    await session.commit()
    await session.refresh(phase)

    logger.info(
        "phase_updated",
        phase_id=str(phase_id),
        is_task=phase.is_task,
        fields_updated=list(updates.keys()),
        version=phase.version,
    )

    return phase


async def delete_phase(
    session: AsyncSession,
    phase_id: UUID,
) -> bool:
    """Hard-delete a phase or task.

    Deleting a phase also removes its tasks, and clears predecessor links
    that pointed at any removed row.

    Args:
        session: Active async database session.
        phase_id: UUID of the row to delete.

    Returns:
        True if the row was deleted, False if not found.
    """
    doomed = select(Phase.id).where(
        or_(Phase.id == phase_id, Phase.parent_phase_id == phase_id)
    )
    doomed_ids = list((await session.execute(doomed)).scalars().all())

    if not doomed_ids:
        logger.warning("phase_not_found", phase_id=str(phase_id))
        return False

    await session.execute(
        update(Phase)
        .where(Phase.predecessor_phase_id.in_(doomed_ids))
        .values(predecessor_phase_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(Phase)
        .where(Phase.id.in_(doomed_ids))
        .execution_options(synchronize_session=False)
    )
    await session.commit()

    logger.info("phase_deleted", phase_id=str(phase_id), rows_removed=len(doomed_ids))
    return True
