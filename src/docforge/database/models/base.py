"""SQLAlchemy declarative base and shared column helpers for Docforge.

This module defines the DeclarativeBase class, a TimestampMixin providing
id, created_at, and updated_at columns, and a JSON column type that maps
to JSONB on PostgreSQL and plain JSON elsewhere (SQLite in tests).

Example:
    >>> class MyModel(TimestampMixin, Base):
    ...     __tablename__ = "my_table"
    ...     name: Mapped[str] = mapped_column(Text, nullable=False)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Return the current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy 2.0 declarative base for all Docforge models."""

    pass


class TimestampMixin:
    """Mixin providing id (UUID), created_at, and updated_at columns.

    Ids and timestamps are generated client-side so the same models work
    on PostgreSQL and SQLite; the server defaults cover rows inserted by
    migrations or manual SQL.

    Attributes:
        id: UUID primary key.
        created_at: Row creation timestamp.
        updated_at: Timestamp refreshed on each modification.
    """

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )
