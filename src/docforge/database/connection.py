"""Database connection management for Docforge.

This module provides factory functions for creating SQLAlchemy async engines
and session factories, configured from the application's DatabaseConfig.

PostgreSQL is reached through asyncpg with connection pooling; SQLite URLs
(``sqlite+aiosqlite://``) are accepted for local use and tests, in which
case the pool-size settings do not apply.

Example usage:
    >>> from docforge.config import DatabaseConfig
    >>> from docforge.database.connection import get_engine, get_session_factory
    >>>
    >>> config = DatabaseConfig(url="postgresql+asyncpg://localhost/docforge")
    >>> engine = get_engine(config)
    >>> SessionFactory = get_session_factory(engine)
    >>>
    >>> async with SessionFactory() as session:
    ...     result = await session.execute(select(Project))
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from docforge.config import DatabaseConfig
from docforge.database.models import Base


def get_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create an async SQLAlchemy engine from database configuration.

    Args:
        config: Database configuration containing URL, pool settings,
                and SQL echo preference.

    Returns:
        Configured AsyncEngine instance.
    """
    if config.url.startswith("sqlite"):
        return create_async_engine(config.url, echo=config.echo)
    return create_async_engine(
        config.url,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        echo=config.echo,
    )


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the given engine.

    Sessions use expire_on_commit=False so attributes stay readable after
    commit without triggering lazy loads.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_all(engine: AsyncEngine) -> None:
    """Create every table that does not exist yet.

    Used by ``docforge db init`` for SQLite and development databases;
    PostgreSQL deployments use the alembic migrations.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
