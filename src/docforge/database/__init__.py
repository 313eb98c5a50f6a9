"""Database layer for Docforge.

This module handles database connections, session management, the ORM
models, and the ``PipelineStore`` persistence boundary used by the
orchestrator.

Public API:
    get_engine: Create an AsyncEngine from DatabaseConfig.
    get_session_factory: Create an async_sessionmaker from an engine.
    create_all: Create missing tables (development and SQLite).
    PipelineStore: Run state and artifact persistence.
    Base: SQLAlchemy declarative base for all models.
"""

from docforge.database.connection import create_all, get_engine, get_session_factory
from docforge.database.models import (
    Artifact,
    Base,
    PipelineRunRecord,
    Project,
    ProjectStatus,
    RunState,
    TimestampMixin,
)
from docforge.database.store import PipelineStore, SessionFactory

__all__ = [
    "get_engine",
    "get_session_factory",
    "create_all",
    "Artifact",
    "Base",
    "PipelineRunRecord",
    "PipelineStore",
    "Project",
    "ProjectStatus",
    "RunState",
    "SessionFactory",
    "TimestampMixin",
]
