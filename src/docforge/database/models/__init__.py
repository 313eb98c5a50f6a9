"""SQLAlchemy ORM models for Docforge.

This module defines the database schema: projects, pipeline runs, and
append-only stage artifacts.

All models use SQLAlchemy 2.0 declarative style with Mapped[] type annotations.
"""

from docforge.database.models.artifact import Artifact
from docforge.database.models.base import Base, JSONType, TimestampMixin, utcnow
from docforge.database.models.project import Project, ProjectStatus
from docforge.database.models.run import ACTIVE_STATES, PipelineRunRecord, RunState

__all__ = [
    "ACTIVE_STATES",
    "Artifact",
    "Base",
    "JSONType",
    "PipelineRunRecord",
    "Project",
    "ProjectStatus",
    "RunState",
    "TimestampMixin",
    "utcnow",
]
