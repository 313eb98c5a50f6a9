"""Run status sum type and the PipelineRun domain model.

``RunStatus`` is a tagged union discriminated on ``kind``:

    Queued | Running(stage) | Failed(reason) | Complete | Cancelled

Each variant is an independent frozen model; there is no status class
hierarchy. Use ``is_terminal`` rather than comparing kinds by hand.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from docforge.pipeline.stages import StageKind


class Queued(BaseModel):
    """Run created, no stage started yet."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["queued"] = "queued"


class Running(BaseModel):
    """Run is executing (or was executing when last persisted) a stage."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["running"] = "running"
    stage: StageKind


class Failed(BaseModel):
    """Run halted with a human-readable reason."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["failed"] = "failed"
    reason: str


class Complete(BaseModel):
    """Every stage committed."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["complete"] = "complete"


class Cancelled(BaseModel):
    """Run stopped at a stage boundary on user request."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["cancelled"] = "cancelled"


RunStatus = Annotated[
    Union[Queued, Running, Failed, Complete, Cancelled],
    Field(discriminator="kind"),
]

TERMINAL_KINDS: frozenset[str] = frozenset({"failed", "complete", "cancelled"})


def is_terminal(status: RunStatus) -> bool:
    """Return True if no further stage may execute for this status."""
    return status.kind in TERMINAL_KINDS


class TransitionEvent(str, enum.Enum):
    """Kinds of entries in a run's transition history.

    Values:
        queued: Run record created.
        started: Stage body about to execute (write-ahead marker).
        completed: Stage artifact committed.
        reused: Stage artifact carried over from the run being resumed.
        failed: Run halted.
        cancelled: Run cancelled at a stage boundary.
        complete: All stages committed.
    """

    queued = "queued"
    started = "started"
    completed = "completed"
    reused = "reused"
    failed = "failed"
    cancelled = "cancelled"
    complete = "complete"


class StageTransition(BaseModel):
    """One entry of a run's append-only transition history.

    Attributes:
        event: What happened.
        stage: Stage the event refers to, if any.
        progress: Run progress after the event.
        at: UTC timestamp of the event.
        detail: Optional free-text detail (failure reason, attempt count).
    """

    model_config = ConfigDict(frozen=True)

    event: TransitionEvent
    stage: StageKind | None = None
    progress: int = Field(ge=0, le=100)
    at: datetime
    detail: str | None = None


class PipelineRun(BaseModel):
    """Authoritative state of one project-generation attempt.

    Attributes:
        id: Run identifier.
        project_id: Project being generated.
        status: Current status variant.
        current_stage: Stage most recently started, if any.
        progress: Completed-stage percentage, never decreasing.
        history: Ordered transition history.
        cancel_requested: Cooperative cancellation flag.
        resumed_from: Terminal run this run continues, if any.
        lease_holder: Worker currently holding the run lease.
        created_at: Creation timestamp.
        started_at: Timestamp of the first stage start.
        finished_at: Timestamp of the terminal transition.
    """

    id: UUID
    project_id: UUID
    status: RunStatus = Field(default_factory=Queued)
    current_stage: StageKind | None = None
    progress: int = Field(default=0, ge=0, le=100)
    history: list[StageTransition] = Field(default_factory=list)
    cancel_requested: bool = False
    resumed_from: UUID | None = None
    lease_holder: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        """Whether the run has reached Complete, Failed, or Cancelled."""
        return is_terminal(self.status)

    def completed_stages(self) -> set[StageKind]:
        """Stages whose artifacts are committed for this run."""
        return {
            t.stage
            for t in self.history
            if t.stage is not None
            and t.event in (TransitionEvent.completed, TransitionEvent.reused)
        }
