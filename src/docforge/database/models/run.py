"""Pipeline run model for Docforge.

Defines the pipeline_runs table. Each row is one generation attempt for a
project and is the authoritative record of its status, transition
history, and lease.

The run lease lives in the row (``lease_holder`` and
``lease_renewed_at``) so that crash recovery does not depend on any
in-process state.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docforge.database.models.base import Base, JSONType, TimestampMixin


class RunState(str, enum.Enum):
    """Persisted status kind of a run.

    Values:
        queued: Created, no stage started.
        running: A stage is executing or was executing when last persisted.
        failed: Halted with a failure reason.
        complete: Every stage committed.
        cancelled: Stopped on user request.
    """

    queued = "queued"
    running = "running"
    failed = "failed"
    complete = "complete"
    cancelled = "cancelled"


ACTIVE_STATES: tuple[RunState, ...] = (RunState.queued, RunState.running)


class PipelineRunRecord(TimestampMixin, Base):
    """A persisted pipeline run.

    Attributes:
        id: UUID primary key (from TimestampMixin).
        project_id: Project being generated.
        state: Status kind.
        current_stage: Stage most recently started.
        progress: Completed-stage percentage.
        failure_reason: Reason recorded when the run failed.
        history: Ordered transition history as JSON.
        cancel_requested: Cooperative cancellation flag.
        resumed_from: Terminal run this run continues.
        lease_holder: Worker currently holding the run lease.
        lease_renewed_at: Last time the lease holder renewed the lease.
        started_at: Time the first stage started.
        finished_at: Time the run became terminal.
    """

    __tablename__ = "pipeline_runs"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    state: Mapped[RunState] = mapped_column(
        default=RunState.queued,
        nullable=False,
    )
    current_stage: Mapped[str | None] = mapped_column(Text, nullable=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    history: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resumed_from: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    lease_holder: Mapped[str | None] = mapped_column(Text, nullable=True)
    lease_renewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    project: Mapped["Project"] = relationship(  # noqa: F821
        "Project",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_pipeline_runs_project_id", "project_id"),
        Index("ix_pipeline_runs_state", "state"),
        # at most one queued or running run per project
        Index(
            "uq_pipeline_runs_active_project",
            "project_id",
            unique=True,
            postgresql_where=text("state IN ('queued', 'running')"),
            sqlite_where=text("state IN ('queued', 'running')"),
        ),
    )
