"""Persistence boundary for the pipeline orchestrator.

``PipelineStore`` maps between the ``PipelineRun`` domain model and the
SQLAlchemy records, and owns transaction boundaries: every public method
runs in its own session and commits before returning. ``commit_stage``
is the one place where an artifact and the run advance are written
together, so a crash can never leave a committed artifact without the
matching history entry or vice versa.

Example:
    >>> store = PipelineStore(session_factory)
    >>> run = await store.create_run(project_id, history=[queued])
    >>> await store.commit_stage(run, StageKind.dev_plan, {"content": "..."})
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Callable
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docforge.database.models.project import Project, ProjectStatus
from docforge.database.models.run import PipelineRunRecord, RunState
from docforge.database.queries import artifact as artifact_queries
from docforge.database.queries import project as project_queries
from docforge.database.queries import run as run_queries
from docforge.errors import (
    ActiveRunExistsError,
    ProjectNotFoundError,
    RunNotFoundError,
)
from docforge.pipeline.stages import StageKind
from docforge.pipeline.status import (
    Cancelled,
    Complete,
    Failed,
    PipelineRun,
    Queued,
    Running,
    RunStatus,
    StageTransition,
)

logger = structlog.get_logger(__name__)

# Type alias matching the orchestrator convention
SessionFactory = Callable[[], AsyncSession]

_PROJECT_STATUS: dict[str, ProjectStatus] = {
    "queued": ProjectStatus.generating,
    "running": ProjectStatus.generating,
    "complete": ProjectStatus.complete,
    "failed": ProjectStatus.failed,
    "cancelled": ProjectStatus.cancelled,
}


def status_from_record(record: PipelineRunRecord) -> RunStatus:
    """Rebuild the status variant from persisted columns."""
    if record.state == RunState.running:
        return Running(stage=StageKind(record.current_stage))
    if record.state == RunState.failed:
        return Failed(reason=record.failure_reason or "")
    if record.state == RunState.complete:
        return Complete()
    if record.state == RunState.cancelled:
        return Cancelled()
    return Queued()


def run_from_record(record: PipelineRunRecord) -> PipelineRun:
    """Convert a run record into the domain model."""
    return PipelineRun(
        id=record.id,
        project_id=record.project_id,
        status=status_from_record(record),
        current_stage=StageKind(record.current_stage) if record.current_stage else None,
        progress=record.progress,
        history=[StageTransition.model_validate(h) for h in record.history or []],
        cancel_requested=record.cancel_requested,
        resumed_from=record.resumed_from,
        lease_holder=record.lease_holder,
        created_at=record.created_at,
        started_at=record.started_at,
        finished_at=record.finished_at,
    )


def _run_columns(run: PipelineRun) -> dict[str, Any]:
    status = run.status
    return {
        "state": RunState(status.kind),
        "current_stage": run.current_stage.value if run.current_stage else None,
        "progress": run.progress,
        "failure_reason": status.reason if isinstance(status, Failed) else None,
        "history": [t.model_dump(mode="json") for t in run.history],
        "started_at": run.started_at,
        "finished_at": run.finished_at,
    }


class PipelineStore:
    """Durable store for projects, run state, and artifacts.

    Attributes:
        session_factory: Callable that produces async database sessions.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory
        self._logger = logger.bind(component="PipelineStore")

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(
        self,
        name: str,
        description: str,
        technologies: list[str] | None = None,
    ) -> Project:
        async with self.session_factory() as session:
            project = await project_queries.create_project(
                session, name, description, technologies
            )
            await session.commit()
            return project

    async def get_project(self, project_id: UUID) -> Project:
        """Return a project.

        Raises:
            ProjectNotFoundError: If the project does not exist.
        """
        async with self.session_factory() as session:
            project = await project_queries.get_project(session, project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    async def list_projects(self) -> list[Project]:
        async with self.session_factory() as session:
            return await project_queries.list_projects(session)

    async def delete_project(self, project_id: UUID) -> None:
        """Delete a project with its runs and artifacts.

        Files already written to the output repository are left in place.

        Raises:
            ProjectNotFoundError: If the project does not exist.
            ActiveRunExistsError: If the project has a queued or running run.
        """
        async with self.session_factory() as session:
            active = await run_queries.get_active_run(session, project_id)
            if active is not None:
                raise ActiveRunExistsError(project_id, active.id)

            deleted = await project_queries.delete_project(session, project_id)
            if not deleted:
                await session.rollback()
                raise ProjectNotFoundError(project_id)
            await session.commit()

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def create_run(
        self,
        project_id: UUID,
        history: list[StageTransition],
        progress: int = 0,
        resumed_from: UUID | None = None,
    ) -> PipelineRun:
        """Create a queued run, rejecting a second active run per project.

        Args:
            project_id: Project to generate.
            history: Initial transition history.
            progress: Initial progress.
            resumed_from: Terminal run this run continues.

        Returns:
            The persisted run.

        Raises:
            ProjectNotFoundError: If the project does not exist.
            ActiveRunExistsError: If the project already has an active run.
        """
        async with self.session_factory() as session:
            project = await project_queries.get_project(session, project_id)
            if project is None:
                raise ProjectNotFoundError(project_id)

            active = await run_queries.get_active_run(session, project_id)
            if active is not None:
                raise ActiveRunExistsError(project_id, active.id)

            try:
                record = await run_queries.create_run(
                    session,
                    project_id,
                    history=[t.model_dump(mode="json") for t in history],
                    progress=progress,
                    resumed_from=resumed_from,
                )
                await project_queries.set_project_state(
                    session, project_id, ProjectStatus.generating, progress
                )
                await session.commit()
            except IntegrityError as e:
                # a concurrent create_run won the partial unique index
                await session.rollback()
                active = await run_queries.get_active_run(session, project_id)
                raise ActiveRunExistsError(
                    project_id, active.id if active else None
                ) from e

            return run_from_record(record)

    async def get_run_state(self, run_id: UUID) -> PipelineRun:
        """Return the latest persisted state of a run.

        Raises:
            RunNotFoundError: If the run does not exist.
        """
        async with self.session_factory() as session:
            record = await run_queries.get_run(session, run_id)
        if record is None:
            raise RunNotFoundError(run_id)
        return run_from_record(record)

    async def list_runs(self, project_id: UUID | None = None) -> list[PipelineRun]:
        async with self.session_factory() as session:
            records = await run_queries.list_runs(session, project_id)
        return [run_from_record(r) for r in records]

    async def put_run_state(self, run: PipelineRun) -> None:
        """Persist a run's status, progress, and history.

        The cancellation flag and lease columns are owned by other writers
        and are left untouched. The project's status and progress are
        mirrored from the run.

        Raises:
            RunNotFoundError: If the run does not exist.
        """
        async with self.session_factory() as session:
            updated = await run_queries.update_run(session, run.id, **_run_columns(run))
            if not updated:
                raise RunNotFoundError(run.id)
            await project_queries.set_project_state(
                session, run.project_id, _PROJECT_STATUS[run.status.kind], run.progress
            )
            await session.commit()

    async def request_cancel(self, run_id: UUID) -> bool:
        """Set the cancellation flag on an active run.

        Returns:
            True if the flag was set, False if the run is not active.
        """
        async with self.session_factory() as session:
            updated = await run_queries.request_cancel(session, run_id)
            await session.commit()
        return updated > 0

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    async def put_artifact(self, run: PipelineRun, stage: StageKind, content: Any) -> None:
        """Append an artifact without touching run state."""
        async with self.session_factory() as session:
            await artifact_queries.insert_artifact(
                session, run.project_id, run.id, stage.value, content
            )
            await session.commit()

    async def get_artifact(self, project_id: UUID, stage: StageKind) -> Any | None:
        """Return the latest artifact content for a project stage, if any."""
        async with self.session_factory() as session:
            artifact = await artifact_queries.get_latest_artifact(
                session, project_id, stage.value
            )
        return artifact.content if artifact is not None else None

    async def load_artifacts(
        self,
        project_id: UUID,
        stages: Iterable[StageKind],
    ) -> dict[StageKind, Any]:
        """Return the latest artifact content for each requested stage."""
        async with self.session_factory() as session:
            latest = await artifact_queries.get_latest_artifacts(
                session, project_id, [s.value for s in stages]
            )
        return {StageKind(k): v for k, v in latest.items()}

    async def commit_stage(self, run: PipelineRun, stage: StageKind, content: Any) -> None:
        """Append a stage artifact and advance the run in one transaction.

        Args:
            run: Run state after the stage completed (history already
                carries the ``completed`` transition).
            stage: Stage whose artifact is committed.
            content: Artifact payload.

        Raises:
            RunNotFoundError: If the run does not exist.
        """
        async with self.session_factory() as session:
            await artifact_queries.insert_artifact(
                session, run.project_id, run.id, stage.value, content
            )
            updated = await run_queries.update_run(session, run.id, **_run_columns(run))
            if not updated:
                await session.rollback()
                raise RunNotFoundError(run.id)
            await project_queries.set_project_state(
                session, run.project_id, _PROJECT_STATUS[run.status.kind], run.progress
            )
            await session.commit()

        self._logger.debug(
            "stage_committed",
            run_id=str(run.id),
            stage=stage.value,
            progress=run.progress,
        )
