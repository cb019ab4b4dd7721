"""Database query functions for Buildplan.

This module provides async query functions for all database entities:
- Project CRUD operations
- Phase and task CRUD, filtered by project, parent and is_task
"""

from buildplan.database.queries.phase import (
    DATE_FIELDS,
    create_phase,
    delete_phase,
    get_phase,
    list_phases,
    list_tasks_of_phase,
    update_phase,
)
from buildplan.database.queries.project import (
    create_project,
    delete_project,
    get_project,
    list_projects,
    update_project,
)

__all__ = [
    # Project queries
    "create_project",
    "get_project",
    "list_projects",
    "update_project",
    "delete_project",
    # Phase / task queries
    "DATE_FIELDS",
    "create_phase",
    "get_phase",
    "list_phases",
    "list_tasks_of_phase",
    "update_phase",
    "delete_phase",
]
