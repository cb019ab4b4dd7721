"""FastAPI route definitions for Buildplan.

Router factories for health checks, projects, and phases/tasks.
"""

from __future__ import annotations

from buildplan.web.routes.health import (
    LivenessResponse,
    ReadinessResponse,
    create_health_router,
)
from buildplan.web.routes.phases import (
    MutationResponse,
    PhaseResponse,
    PhaseTreeResponse,
    create_phases_router,
)
from buildplan.web.routes.projects import (
    ProjectCreate,
    ProjectMetricsResponse,
    ProjectResponse,
    ProjectUpdate,
    create_projects_router,
)

__all__ = [
    # Health
    "LivenessResponse",
    "ReadinessResponse",
    "create_health_router",
    # Phases
    "MutationResponse",
    "PhaseResponse",
    "PhaseTreeResponse",
    "create_phases_router",
    # Projects
    "ProjectCreate",
    "ProjectMetricsResponse",
    "ProjectResponse",
    "ProjectUpdate",
    "create_projects_router",
]
