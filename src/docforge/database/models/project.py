"""Project model for Docforge.

Defines the Project table and ProjectStatus enum. A project holds the
description that drives generation plus a status and progress mirrored
from its most recent pipeline run.
"""

from __future__ import annotations

import enum
from typing import Any

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from docforge.database.models.base import Base, JSONType, TimestampMixin


class ProjectStatus(enum.Enum):
    """Generation status of a project.

    States:
        pending: No run has started yet.
        generating: A run is queued or running.
        complete: The latest run completed.
        failed: The latest run failed.
        cancelled: The latest run was cancelled.
    """

    pending = "pending"
    generating = "generating"
    complete = "complete"
    failed = "failed"
    cancelled = "cancelled"


class Project(TimestampMixin, Base):
    """A project whose documentation repository is being generated.

    Attributes:
        id: UUID primary key (from TimestampMixin).
        name: Human-readable project name.
        description: Free-text description sent to the generation service.
        technologies: Technologies the project uses.
        status: Status mirrored from the latest run.
        progress: Progress percentage mirrored from the latest run.
        created_at: Row creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    technologies: Mapped[list[Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )
    status: Mapped[ProjectStatus] = mapped_column(
        default=ProjectStatus.pending,
        nullable=False,
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
