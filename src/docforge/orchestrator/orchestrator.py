"""Pipeline orchestrator.

The orchestrator is the only component that mutates runs and projects.
It sequences the stages of a run strictly in pipeline order, persists a
write-ahead ``started`` transition before each stage body runs, applies
the retry policy, commits each stage's artifact atomically with the run
advance, and emits one notification per transition.

Concurrency model:

- Each run is advanced by one asyncio worker task; a semaphore bounds the
  number of runs advanced at once by this process.
- A run's lease (stored in its row) guarantees one worker per run across
  processes. It is renewed at every stage start and released when the run
  becomes terminal or the worker yields.
- Cancellation is cooperative: ``cancel`` sets a persisted flag that the
  worker checks before each stage.

Resume semantics:

- A non-terminal run (for example one whose worker crashed) continues
  under the same id from its first uncommitted stage.
- A Failed or Cancelled run is continued by a new run that reuses the old
  run's committed artifacts and records ``resumed_from``.
- A Complete run cannot be resumed.

Example:
    >>> orchestrator = build_orchestrator(config, session_factory, client)
    >>> run_id = await orchestrator.start(project_id)
    >>> run = await orchestrator.wait(run_id)
    >>> run.status.kind
    'complete'
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any
from uuid import UUID

import structlog

from docforge.config import DocforgeConfig
from docforge.database.models.project import Project
from docforge.database.store import PipelineStore, SessionFactory
from docforge.errors import LeaseHeldError, PipelineError
from docforge.integrations.generation import GenerationClient
from docforge.integrations.notifications import Notifier, RunEvent, build_notifier
from docforge.integrations.repository import WriterFactory, local_writer_factory
from docforge.logging import bind_run_context, clear_run_context
from docforge.orchestrator.lease import RunLeaser
from docforge.orchestrator.retry import RetryPolicy, Sleep
from docforge.orchestrator.state_machine import (
    InvalidTransitionError,
    RunStateMachine,
    initial_history,
)
from docforge.pipeline.handlers import StageContext, StageHandler, build_handlers
from docforge.pipeline.stages import StageKind, next_stage, progress_for
from docforge.pipeline.status import PipelineRun

logger = structlog.get_logger(__name__)


class PipelineOrchestrator:
    """Finite-state controller for pipeline runs.

    Attributes:
        store: Persistence boundary for projects, runs, and artifacts.
        leaser: Run lease service bound to this worker.
        handlers: Stage handler per stage kind.
        notifier: Receives one event per run transition.
        retry: Per-stage retry policy.
        state_machine: Run transition validator.
    """

    def __init__(
        self,
        store: PipelineStore,
        leaser: RunLeaser,
        handlers: Mapping[StageKind, StageHandler],
        notifier: Notifier,
        retry: RetryPolicy,
        max_concurrent_runs: int = 4,
        state_machine: RunStateMachine | None = None,
    ) -> None:
        missing = [s.value for s in StageKind if s not in handlers]
        if missing:
            raise ValueError(f"No handler registered for stages: {missing}")

        self.store = store
        self.leaser = leaser
        self.handlers = dict(handlers)
        self.notifier = notifier
        self.retry = retry
        self.state_machine = state_machine or RunStateMachine()

        self._semaphore = asyncio.Semaphore(max_concurrent_runs)
        self._tasks: dict[UUID, asyncio.Task[PipelineRun | None]] = {}
        self._logger = logger.bind(component="PipelineOrchestrator", worker_id=leaser.worker_id)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def active_runs(self) -> list[UUID]:
        """Runs with a live worker task in this process."""
        return [run_id for run_id, task in self._tasks.items() if not task.done()]

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start(self, project_id: UUID) -> UUID:
        """Create a run for a project and schedule it.

        Args:
            project_id: Project to generate.

        Returns:
            The new run's id.

        Raises:
            ProjectNotFoundError: If the project does not exist.
            ActiveRunExistsError: If the project already has an active run.
        """
        run = await self.store.create_run(project_id, initial_history())
        self._logger.info("run_started", run_id=str(run.id), project_id=str(project_id))
        await self._emit(run)
        self._schedule(run.id)
        return run.id

    async def resume(self, run_id: UUID) -> UUID:
        """Continue an interrupted, failed, or cancelled run.

        Args:
            run_id: Run to resume.

        Returns:
            ``run_id`` for a non-terminal run, otherwise the id of the new
            run that continues it.

        Raises:
            RunNotFoundError: If the run does not exist.
            InvalidTransitionError: If the run is Complete.
            LeaseHeldError: If another live worker is advancing the run.
            ActiveRunExistsError: If the project already has another
                active run.
        """
        run = await self.store.get_run_state(run_id)

        if run.status.kind == "complete":
            raise InvalidTransitionError("complete", "running", str(run_id))

        if not run.is_terminal:
            task = self._tasks.get(run_id)
            if task is not None and not task.done():
                return run_id
            # fail fast while the caller is still waiting
            await self.leaser.acquire(run_id)
            self._logger.info("run_resumed", run_id=str(run_id), stage=_stage(run))
            self._schedule(run_id)
            return run_id

        reused = run.completed_stages()
        resumed = await self.store.create_run(
            run.project_id,
            initial_history(reused),
            progress=progress_for(len(reused)),
            resumed_from=run.id,
        )
        self._logger.info(
            "run_resumed_as_new",
            run_id=str(resumed.id),
            resumed_from=str(run_id),
            reused_stages=sorted(s.value for s in reused),
        )
        await self._emit(resumed)
        self._schedule(resumed.id)
        return resumed.id

    async def status(self, run_id: UUID) -> PipelineRun:
        """Return the latest persisted state of a run.

        Raises:
            RunNotFoundError: If the run does not exist.
        """
        return await self.store.get_run_state(run_id)

    async def cancel(self, run_id: UUID) -> PipelineRun:
        """Request cancellation of a run.

        A run no live worker holds (queued and unclaimed, or interrupted
        with a free or expired lease) is cancelled immediately; otherwise
        the worker advancing the run stops before its next stage.

        Returns:
            The run state after the request.

        Raises:
            RunNotFoundError: If the run does not exist.
            InvalidTransitionError: If the run is already terminal.
        """
        run = await self.store.get_run_state(run_id)
        if run.is_terminal:
            raise InvalidTransitionError(run.status.kind, "cancelled", str(run_id))

        if not await self.store.request_cancel(run_id):
            latest = await self.store.get_run_state(run_id)
            raise InvalidTransitionError(latest.status.kind, "cancelled", str(run_id))

        self._logger.info("run_cancel_requested", run_id=str(run_id), status=run.status.kind)

        await self._cancel_unattended(run_id)

        return await self.store.get_run_state(run_id)

    async def wait(self, run_id: UUID) -> PipelineRun:
        """Wait for this process's worker on a run, then return its state.

        Exceptions raised by the worker propagate to the caller.
        """
        task = self._tasks.get(run_id)
        if task is not None:
            await task
        return await self.store.get_run_state(run_id)

    async def shutdown(self) -> None:
        """Cancel every worker task; their leases are released as they yield."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        if not tasks:
            return
        self._logger.info("orchestrator_shutting_down", active_runs=len(tasks))
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                self._logger.warning(
                    "worker_shutdown_error",
                    error=str(result),
                    error_type=type(result).__name__,
                )

    async def execute(self, run_id: UUID) -> PipelineRun | None:
        """Advance a run until it is terminal, holding its lease throughout.

        Returns:
            The terminal run, or None if the run was already terminal when
            the lease was requested.

        Raises:
            LeaseHeldError: If another live worker holds the lease, or the
                lease is lost mid-run.
            asyncio.CancelledError: If the worker is cancelled; the run is
                left resumable.
        """
        try:
            await self.leaser.acquire(run_id)
        except LeaseHeldError:
            run = await self.store.get_run_state(run_id)
            if run.is_terminal:
                self._logger.info(
                    "run_already_terminal", run_id=str(run_id), status=run.status.kind
                )
                return None
            raise

        try:
            run = await self.store.get_run_state(run_id)
            bind_run_context(str(run.id), str(run.project_id))
            project = await self.store.get_project(run.project_id)
            return await self._advance(run, project)
        except asyncio.CancelledError:
            self._logger.warning("run_worker_yielded", run_id=str(run_id))
            raise
        finally:
            await self.leaser.release(run_id)
            clear_run_context()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _schedule(self, run_id: UUID) -> None:
        for done in [rid for rid, t in self._tasks.items() if t.done()]:
            self._tasks.pop(done)
        self._tasks[run_id] = asyncio.create_task(
            self._worker(run_id),
            name=f"run-{run_id}",
        )

    async def _worker(self, run_id: UUID) -> PipelineRun | None:
        async with self._semaphore:
            try:
                return await self.execute(run_id)
            except LeaseHeldError as e:
                run = await self.store.get_run_state(run_id)
                if run.is_terminal or run.cancel_requested:
                    # a canceller holds the run; it ends Cancelled without us
                    self._logger.info(
                        "run_worker_stood_down",
                        run_id=str(run_id),
                        status=run.status.kind,
                        holder=e.holder,
                    )
                    return run
                self._logger.warning("run_worker_stopped", run_id=str(run_id), error=str(e))
                raise
            except InvalidTransitionError as e:
                self._logger.warning("run_worker_stopped", run_id=str(run_id), error=str(e))
                raise

    async def _cancel_unattended(self, run_id: UUID) -> None:
        """Cancel an active run no live worker holds, under a lease of its own."""
        canceller = RunLeaser(
            self.leaser.session_factory,
            f"{self.leaser.worker_id}/cancel",
            int(self.leaser.ttl.total_seconds()),
        )
        try:
            await canceller.acquire(run_id)
        except LeaseHeldError:
            # a live worker holds the run; it will observe the flag
            return

        try:
            run = await self.store.get_run_state(run_id)
            if not run.is_terminal:
                run = self.state_machine.cancel(run)
                await self.store.put_run_state(run)
                await self._emit(run)
        finally:
            await canceller.release(run_id)

    async def _advance(self, run: PipelineRun, project: Project) -> PipelineRun:
        while True:
            completed = run.completed_stages()
            stage = next_stage(completed)

            if stage is None:
                run = self.state_machine.finish(run)
                await self.store.put_run_state(run)
                await self._emit(run)
                self._logger.info("run_complete", run_id=str(run.id))
                return run

            persisted = await self.store.get_run_state(run.id)
            if persisted.cancel_requested:
                run = self.state_machine.cancel(run)
                await self.store.put_run_state(run)
                await self._emit(run)
                self._logger.info("run_cancelled", run_id=str(run.id), next_stage=stage.value)
                return run

            await self.leaser.renew(run.id)

            # write-ahead: a crash from here on leaves "started, not completed"
            run = self.state_machine.start_stage(run, stage)
            await self.store.put_run_state(run)
            await self._emit(run)

            artifacts = await self.store.load_artifacts(project.id, completed)
            ctx = StageContext(
                run_id=run.id,
                project_id=project.id,
                project_name=project.name,
                description=project.description,
                technologies=tuple(project.technologies or ()),
                stage=stage,
                artifacts=artifacts,
            )

            try:
                content = await self.retry.run(stage, self._attempt(stage, ctx))
            except PipelineError as e:
                return await self._fail(run, stage, str(e), category=e.category.value)
            except Exception as e:
                self._logger.exception(
                    "stage_unexpected_error",
                    run_id=str(run.id),
                    stage=stage.value,
                )
                return await self._fail(run, stage, f"{type(e).__name__}: {e}", "unexpected")

            run = self.state_machine.complete_stage(run, stage)
            await self.store.commit_stage(run, stage, content)
            await self._emit(run)

    def _attempt(
        self, stage: StageKind, ctx: StageContext
    ) -> Callable[[int], Awaitable[dict[str, Any]]]:
        handler = self.handlers[stage]

        async def body(attempt: int) -> dict[str, Any]:
            self._logger.debug("stage_attempt", stage=stage.value, attempt=attempt)
            return await handler.run(ctx)

        return body

    async def _fail(
        self, run: PipelineRun, stage: StageKind, reason: str, category: str
    ) -> PipelineRun:
        run = self.state_machine.fail(run, reason, stage)
        await self.store.put_run_state(run)
        await self._emit(run)
        self._logger.warning(
            "run_failed",
            run_id=str(run.id),
            stage=stage.value,
            category=category,
            reason=reason,
        )
        return run

    async def _emit(self, run: PipelineRun) -> None:
        last = run.history[-1]
        event = RunEvent(
            run_id=run.id,
            project_id=run.project_id,
            event=last.event.value,
            stage=last.stage.value if last.stage else None,
            status=run.status.kind,
            progress=run.progress,
            reason=getattr(run.status, "reason", None),
            occurred_at=last.at,
        )
        try:
            await self.notifier.notify(event)
        except Exception as e:
            self._logger.error("notification_failed", run_event=event.event, error=str(e))


def _stage(run: PipelineRun) -> str | None:
    return run.current_stage.value if run.current_stage else None


def build_orchestrator(
    config: DocforgeConfig,
    session_factory: SessionFactory,
    client: GenerationClient,
    notifier: Notifier | None = None,
    writer_factory: WriterFactory | None = None,
    sleep: Sleep | None = None,
) -> PipelineOrchestrator:
    """Assemble an orchestrator from configuration.

    Args:
        config: Application configuration.
        session_factory: Database session factory.
        client: Generation service client.
        notifier: Event sink; defaults to the configured notifier chain.
        writer_factory: Repository writer factory; defaults to local files
            under ``repository.output_dir``.
        sleep: Backoff sleep function; defaults to ``asyncio.sleep``.

    Returns:
        Configured PipelineOrchestrator.
    """
    pipeline = config.pipeline
    handlers = build_handlers(
        client,
        config.analysis,
        writer_factory or local_writer_factory(config.repository.output_dir),
    )
    retry = RetryPolicy(pipeline, sleep=sleep) if sleep else RetryPolicy(pipeline)
    return PipelineOrchestrator(
        store=PipelineStore(session_factory),
        leaser=RunLeaser(session_factory, pipeline.worker_id, pipeline.lease_ttl_seconds),
        handlers=handlers,
        notifier=notifier or build_notifier(config.notifications),
        retry=retry,
        max_concurrent_runs=pipeline.max_concurrent_runs,
    )
