"""Artifact model for Docforge.

Artifacts are append-only: a stage that is re-run inserts a new row and
the latest row for a (project, stage) pair wins. The integer primary key
gives a total insertion order that does not depend on clock resolution.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from docforge.database.models.base import Base, JSONType, utcnow


class Artifact(Base):
    """Immutable output of one stage of one run.

    Attributes:
        id: Monotonic insertion sequence.
        project_id: Project the artifact belongs to.
        run_id: Run that committed the artifact.
        stage_kind: Stage value that produced the artifact.
        content: Stage-specific JSON payload.
        created_at: Commit timestamp.
    """

    __tablename__ = "artifacts"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer(), "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("pipeline_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    stage_kind: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[Any] = mapped_column(JSONType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_artifacts_project_stage", "project_id", "stage_kind"),
        Index("ix_artifacts_run_id", "run_id"),
    )
