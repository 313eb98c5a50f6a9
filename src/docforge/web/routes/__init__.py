"""HTTP route definitions for the Docforge API."""

from __future__ import annotations

from docforge.web.routes.health import (
    HealthResponse,
    ReadinessResponse,
    create_health_router,
)
from docforge.web.routes.projects import (
    ProjectCreate,
    ProjectResponse,
    create_projects_router,
)
from docforge.web.routes.runs import (
    ArtifactResponse,
    RunResponse,
    create_runs_router,
)

__all__ = [
    # Health
    "HealthResponse",
    "ReadinessResponse",
    "create_health_router",
    # Projects
    "ProjectCreate",
    "ProjectResponse",
    "create_projects_router",
    # Runs
    "ArtifactResponse",
    "RunResponse",
    "create_runs_router",
]
