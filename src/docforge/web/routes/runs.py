"""Pipeline run endpoints.

Runs are created through ``POST /projects/{project_id}/runs``; this router
covers everything addressed by run id:

- ``GET /runs/{run_id}`` returns the persisted run state
- ``POST /runs/{run_id}/resume`` continues an interrupted or halted run
- ``POST /runs/{run_id}/cancel`` requests cooperative cancellation
- ``GET /runs/{run_id}/artifacts/{stage}`` returns a committed artifact

Orchestrator errors are translated to HTTP errors by ``to_http_error``:
unknown ids give 404, state conflicts give 409.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi import status as http_status
from pydantic import BaseModel

from docforge.errors import (
    ActiveRunExistsError,
    LeaseHeldError,
    ProjectNotFoundError,
    RunNotFoundError,
)
from docforge.logging import get_logger
from docforge.orchestrator import InvalidTransitionError, PipelineOrchestrator
from docforge.pipeline.stages import StageKind
from docforge.pipeline.status import PipelineRun, StageTransition

logger = get_logger(__name__)


class RunResponse(BaseModel):
    """Response schema for a pipeline run.

    Attributes:
        id: Run identifier
        project_id: Project being generated
        status: Status kind (queued, running, failed, complete, cancelled)
        stage: Stage being executed while running
        reason: Failure reason for failed runs
        progress: Completed-stage percentage
        cancel_requested: Whether cancellation has been requested
        resumed_from: Run this run continues, if any
        history: Ordered transition history
        created_at: Creation timestamp
        started_at: First stage start timestamp
        finished_at: Terminal transition timestamp
    """

    id: UUID
    project_id: UUID
    status: str
    stage: StageKind | None = None
    reason: str | None = None
    progress: int
    cancel_requested: bool
    resumed_from: UUID | None = None
    history: list[StageTransition]
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_run(cls, run: PipelineRun) -> RunResponse:
        return cls(
            id=run.id,
            project_id=run.project_id,
            status=run.status.kind,
            stage=getattr(run.status, "stage", None),
            reason=getattr(run.status, "reason", None),
            progress=run.progress,
            cancel_requested=run.cancel_requested,
            resumed_from=run.resumed_from,
            history=run.history,
            created_at=run.created_at,
            started_at=run.started_at,
            finished_at=run.finished_at,
        )


class ArtifactResponse(BaseModel):
    run_id: UUID
    stage: StageKind
    content: Any


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    """Dependency that retrieves the orchestrator from app state."""
    return request.app.state.orchestrator  # type: ignore[no-any-return]


def to_http_error(exc: Exception) -> HTTPException:
    """Map an orchestrator error onto an HTTP error."""
    if isinstance(exc, (RunNotFoundError, ProjectNotFoundError)):
        code = http_status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (ActiveRunExistsError, LeaseHeldError, InvalidTransitionError)):
        code = http_status.HTTP_409_CONFLICT
    else:
        code = http_status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(exc))


CALLER_ERRORS = (
    RunNotFoundError,
    ProjectNotFoundError,
    ActiveRunExistsError,
    LeaseHeldError,
    InvalidTransitionError,
)


def create_runs_router() -> APIRouter:
    """Create the runs router.

    Routes:
        GET /runs/{run_id} - Run status
        POST /runs/{run_id}/resume - Resume a run
        POST /runs/{run_id}/cancel - Cancel a run
        GET /runs/{run_id}/artifacts/{stage} - Latest artifact for a stage
    """
    router = APIRouter(prefix="/runs", tags=["runs"])

    @router.get("/{run_id}", response_model=RunResponse)
    async def get_run(
        run_id: UUID,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> RunResponse:
        try:
            run = await orchestrator.status(run_id)
        except CALLER_ERRORS as e:
            raise to_http_error(e) from e
        return RunResponse.from_run(run)

    @router.post(
        "/{run_id}/resume",
        response_model=RunResponse,
        status_code=http_status.HTTP_202_ACCEPTED,
    )
    async def resume_run(
        run_id: UUID,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> RunResponse:
        """Resume a run.

        The response describes the run that will continue the work: the
        same run for an interrupted run, a new one for a failed or
        cancelled run.
        """
        try:
            resumed_id = await orchestrator.resume(run_id)
            run = await orchestrator.status(resumed_id)
        except CALLER_ERRORS as e:
            logger.warning("run_resume_rejected", run_id=str(run_id), error=str(e))
            raise to_http_error(e) from e

        logger.info("run_resume_accepted", run_id=str(run_id), resumed_id=str(resumed_id))
        return RunResponse.from_run(run)

    @router.post(
        "/{run_id}/cancel",
        response_model=RunResponse,
        status_code=http_status.HTTP_202_ACCEPTED,
    )
    async def cancel_run(
        run_id: UUID,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> RunResponse:
        try:
            run = await orchestrator.cancel(run_id)
        except CALLER_ERRORS as e:
            raise to_http_error(e) from e
        return RunResponse.from_run(run)

    @router.get("/{run_id}/artifacts/{stage}", response_model=ArtifactResponse)
    async def get_artifact(
        run_id: UUID,
        stage: StageKind,
        orchestrator: PipelineOrchestrator = Depends(get_orchestrator),  # noqa: B008
    ) -> ArtifactResponse:
        """Return the project's latest committed artifact for a stage.

        Artifacts reused by a resumed run are visible through it.
        """
        try:
            run = await orchestrator.status(run_id)
        except CALLER_ERRORS as e:
            raise to_http_error(e) from e

        content = await orchestrator.store.get_artifact(run.project_id, stage)
        if content is None:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND,
                detail=f"No {stage.value} artifact for run {run_id}",
            )
        return ArtifactResponse(run_id=run_id, stage=stage, content=content)

    return router
