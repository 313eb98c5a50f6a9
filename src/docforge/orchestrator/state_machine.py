"""Run state machine for the Docforge orchestrator.

This module implements the pipeline run lifecycle: it validates status
transitions and produces the next ``PipelineRun`` value together with the
history entry describing the transition. It never touches the database;
the orchestrator persists the returned runs.

    queued  -> running | cancelled | failed | complete
    running -> running | cancelled | failed | complete
    failed, complete, cancelled: terminal
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from docforge.pipeline.stages import StageKind, progress_for
from docforge.pipeline.status import (
    Cancelled,
    Complete,
    Failed,
    PipelineRun,
    Running,
    RunStatus,
    StageTransition,
    TransitionEvent,
)

logger = structlog.get_logger(__name__)


class InvalidTransitionError(Exception):
    """Raised when an invalid run status transition is attempted.

    Attributes:
        current: The current status kind.
        target: The attempted target status kind.
        run_id: The ID of the run that failed to transition.
    """

    def __init__(self, current: str, target: str, run_id: str | None = None):
        self.current = current
        self.target = target
        self.run_id = run_id
        msg = f"Invalid transition from {current} to {target}"
        if run_id:
            msg += f" for run {run_id}"
        super().__init__(msg)


# Authoritative state machine definition
VALID_TRANSITIONS: dict[str, set[str]] = {
    "queued": {"running", "cancelled", "failed", "complete"},
    "running": {"running", "cancelled", "failed", "complete"},
    "failed": set(),  # Terminal states - no transitions allowed
    "complete": set(),
    "cancelled": set(),
}


def validate_transition(current: str, target: str) -> bool:
    """Validate if a status transition is allowed.

    Args:
        current: Current status kind.
        target: Target status kind.

    Returns:
        True if the transition is valid according to VALID_TRANSITIONS.
    """
    return target in VALID_TRANSITIONS.get(current, set())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RunStateMachine:
    """Computes run transitions with validation and history bookkeeping."""

    def __init__(self) -> None:
        self.logger = logger.bind(component="RunStateMachine")

    def _advance(
        self,
        run: PipelineRun,
        status: RunStatus,
        event: TransitionEvent,
        stage: StageKind | None,
        detail: str | None = None,
        completed: set[StageKind] | None = None,
    ) -> PipelineRun:
        if not validate_transition(run.status.kind, status.kind):
            raise InvalidTransitionError(run.status.kind, status.kind, str(run.id))

        done = completed if completed is not None else run.completed_stages()
        # progress never decreases within a run
        progress = max(run.progress, progress_for(len(done)))
        at = _now()
        transition = StageTransition(
            event=event,
            stage=stage,
            progress=progress,
            at=at,
            detail=detail,
        )
        updates: dict[str, object] = {
            "status": status,
            "progress": progress,
            "history": [*run.history, transition],
        }
        if isinstance(status, Running):
            updates["current_stage"] = status.stage
            if run.started_at is None:
                updates["started_at"] = at
        if status.kind in ("failed", "complete", "cancelled"):
            updates["finished_at"] = at

        self.logger.info(
            "run_transition",
            run_id=str(run.id),
            from_status=run.status.kind,
            to_status=status.kind,
            transition=event.value,
            stage=stage.value if stage else None,
            progress=progress,
        )
        return run.model_copy(update=updates)

    def start_stage(self, run: PipelineRun, stage: StageKind, attempt: int = 1) -> PipelineRun:
        """Record the write-ahead ``started`` marker for a stage."""
        detail = f"attempt {attempt}" if attempt > 1 else None
        return self._advance(run, Running(stage=stage), TransitionEvent.started, stage, detail)

    def complete_stage(self, run: PipelineRun, stage: StageKind) -> PipelineRun:
        """Record a committed stage and recompute progress."""
        completed = run.completed_stages() | {stage}
        return self._advance(
            run, Running(stage=stage), TransitionEvent.completed, stage, completed=completed
        )

    def fail(self, run: PipelineRun, reason: str, stage: StageKind | None = None) -> PipelineRun:
        """Halt the run with a failure reason."""
        return self._advance(run, Failed(reason=reason), TransitionEvent.failed, stage, reason)

    def cancel(self, run: PipelineRun) -> PipelineRun:
        """Stop the run at a stage boundary."""
        return self._advance(run, Cancelled(), TransitionEvent.cancelled, run.current_stage)

    def finish(self, run: PipelineRun) -> PipelineRun:
        """Mark every stage committed."""
        return self._advance(run, Complete(), TransitionEvent.complete, None)


def initial_history(reused: set[StageKind] | None = None) -> list[StageTransition]:
    """Build the history of a new run.

    A fresh run has a single ``queued`` entry. A run resuming a terminal
    run first records one ``reused`` entry per carried-over stage, in
    pipeline order, so progress reflects the reused artifacts; ``queued``
    is always the last entry.
    """
    at = _now()
    history: list[StageTransition] = []
    reused = reused or set()
    count = 0
    for stage in StageKind:
        if stage in reused:
            count += 1
            history.append(
                StageTransition(
                    event=TransitionEvent.reused,
                    stage=stage,
                    progress=progress_for(count),
                    at=at,
                )
            )
    history.append(
        StageTransition(event=TransitionEvent.queued, progress=progress_for(count), at=at)
    )
    return history
