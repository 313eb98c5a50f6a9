"""Database query functions for Docforge.

This module provides async query functions for all database entities:
- Project creation, lookup, deletion, and status mirroring
- Pipeline run records and the row-level run lease
- Append-only artifact storage
"""

from docforge.database.queries.artifact import (
    get_latest_artifact,
    get_latest_artifacts,
    insert_artifact,
    list_run_artifacts,
)
from docforge.database.queries.project import (
    create_project,
    delete_project,
    get_project,
    list_projects,
    set_project_state,
)
from docforge.database.queries.run import (
    acquire_lease,
    create_run,
    get_active_run,
    get_run,
    list_runs,
    release_lease,
    renew_lease,
    request_cancel,
    update_run,
)

__all__ = [
    # Project queries
    "create_project",
    "delete_project",
    "get_project",
    "list_projects",
    "set_project_state",
    # Run queries
    "acquire_lease",
    "create_run",
    "get_active_run",
    "get_run",
    "list_runs",
    "release_lease",
    "renew_lease",
    "request_cancel",
    "update_run",
    # Artifact queries
    "get_latest_artifact",
    "get_latest_artifacts",
    "insert_artifact",
    "list_run_artifacts",
]
