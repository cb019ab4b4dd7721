"""Request dependencies shared by the Buildplan routers.

Route handlers obtain a session factory, the tenant scope and the scheduling
configuration through these functions, and translate domain errors into HTTP
errors with http_error.
"""

from __future__ import annotations

from fastapi import Header, HTTPException, Request
from fastapi import status as http_status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from buildplan.config import SchedulingConfig
from buildplan.errors import NotFoundError, ValidationError


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Dependency that retrieves session factory from app state.

    Args:
        request: FastAPI request object

    Returns:
        Session factory from app.state
    """
    return request.app.state.session_factory  # type: ignore[return-value]


def get_scheduling_config(request: Request) -> SchedulingConfig:
    """Scheduling settings of the running application."""
    config = getattr(request.app.state, "config", None)
    if config is None:
        return SchedulingConfig()
    return config.scheduling


def get_organization_id(
    x_organization_id: str | None = Header(default=None),
) -> str | None:
    """Tenant scope from the X-Organization-ID header.

    When present, every lookup is restricted to that organization.
    """
    return x_organization_id or None


def http_error(exc: Exception) -> HTTPException:
    """Map a domain error to the HTTP error returned to the client.

    ValidationError becomes 400 (with the individual messages), NotFoundError
    404, and a concurrent modification 409.
    """
    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={"error": "Validation failed", "details": exc.errors},
        )
    if isinstance(exc, NotFoundError):
        return HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        )
    if isinstance(exc, StaleDataError):
        return HTTPException(
            status_code=http_status.HTTP_409_CONFLICT,
            detail="Phase was modified concurrently, retry the request",
        )
    return HTTPException(
        status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )
