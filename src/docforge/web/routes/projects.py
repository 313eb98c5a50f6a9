"""Project endpoints.

Projects are created and listed here, and runs are started for them:

- ``GET /projects/`` lists projects
- ``POST /projects/`` creates a project
- ``GET /projects/{project_id}`` returns one project
- ``DELETE /projects/{project_id}`` deletes a project without an active run
- ``GET /projects/{project_id}/runs`` lists the project's runs
- ``POST /projects/{project_id}/runs`` starts a generation run
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi import status as http_status
from pydantic import BaseModel, Field

from docforge.database.models.project import ProjectStatus
from docforge.logging import get_logger
from docforge.orchestrator import PipelineOrchestrator
from docforge.web.routes.runs import (
    CALLER_ERRORS,
    RunResponse,
    get_orchestrator,
    to_http_error,
)

logger = get_logger(__name__)


class ProjectCreate(BaseModel):
    """Request schema for creating a project.

    Attributes:
        name: Human-readable project name (1-255 characters)
        description: Free-text description handed to the generation service
        technologies: Technologies the project uses
    """

    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=20_000)
    technologies: list[str] = Field(default_factory=list)


class ProjectResponse(BaseModel):
    id: UUID
    name: str
    description: str
    technologies: list[str]
    status: ProjectStatus
    progress: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


def create_projects_router() -> APIRouter:
    """Create the projects router."""
    router = APIRouter(prefix="/projects", tags=["projects"])

    @router.get("/", response_model=list[ProjectResponse])
    async def list_projects(
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> list[ProjectResponse]:
        projects = await orchestrator.store.list_projects()
        return [ProjectResponse.model_validate(p) for p in projects]

    @router.post(
        "/",
        response_model=ProjectResponse,
        status_code=http_status.HTTP_201_CREATED,
    )
    async def create_project(
        body: ProjectCreate,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> ProjectResponse:
        project = await orchestrator.store.create_project(
            body.name, body.description, body.technologies
        )
        logger.info("project_created", project_id=str(project.id), name=project.name)
        return ProjectResponse.model_validate(project)

    @router.get("/{project_id}", response_model=ProjectResponse)
    async def get_project(
        project_id: UUID,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> ProjectResponse:
        try:
            project = await orchestrator.store.get_project(project_id)
        except CALLER_ERRORS as e:
            raise to_http_error(e) from e
        return ProjectResponse.model_validate(project)

    @router.delete("/{project_id}", status_code=http_status.HTTP_204_NO_CONTENT)
    async def delete_project(
        project_id: UUID,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> None:
        """Delete a project with its runs and artifacts.

        Raises:
            HTTPException: 404 if the project does not exist, 409 if it
                has an active run
        """
        try:
            await orchestrator.store.delete_project(project_id)
        except CALLER_ERRORS as e:
            logger.warning("project_delete_rejected", project_id=str(project_id), error=str(e))
            raise to_http_error(e) from e
        logger.info("project_deleted_via_api", project_id=str(project_id))

    @router.get("/{project_id}/runs", response_model=list[RunResponse])
    async def list_project_runs(
        project_id: UUID,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> list[RunResponse]:
        try:
            await orchestrator.store.get_project(project_id)
        except CALLER_ERRORS as e:
            raise to_http_error(e) from e
        runs = await orchestrator.store.list_runs(project_id)
        return [RunResponse.from_run(r) for r in runs]

    @router.post(
        "/{project_id}/runs",
        response_model=RunResponse,
        status_code=http_status.HTTP_202_ACCEPTED,
    )
    async def start_run(
        project_id: UUID,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> RunResponse:
        """Start a generation run; it advances in the background."""
        try:
            run_id = await orchestrator.start(project_id)
            run = await orchestrator.status(run_id)
        except CALLER_ERRORS as e:
            logger.warning("run_start_rejected", project_id=str(project_id), error=str(e))
            raise to_http_error(e) from e
        return RunResponse.from_run(run)

    return router
