"""Project query functions for Docforge.

Provides async functions for creating, reading, updating, and deleting Project
records using the SQLAlchemy 2.0 select() API. Functions flush but never
commit; the caller owns the transaction.
"""

from __future__ import annotations

from uuid import UUID

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docforge.database.models.artifact import Artifact
from docforge.database.models.base import utcnow
from docforge.database.models.project import Project, ProjectStatus
from docforge.database.models.run import PipelineRunRecord

logger = structlog.get_logger(__name__)


async def create_project(
    session: AsyncSession,
    name: str,
    description: str,
    technologies: list[str] | None = None,
) -> Project:
    """Create a new project.

    Args:
        session: Active async database session.
        name: Human-readable project name.
        description: Free-text description driving generation.
        technologies: Optional list of technologies.

    Returns:
        The newly created Project instance.
    """
    project = Project(
        name=name,
        description=description,
        technologies=list(technologies or []),
        status=ProjectStatus.pending,
        progress=0,
    )
    session.add(project)
    await session.flush()

    logger.info(
        "project_created",
        project_id=str(project.id),
        name=name,
    )
    return project


async def get_project(
    session: AsyncSession,
    project_id: UUID,
) -> Project | None:
    """Retrieve a project by ID.

    Returns:
        The Project instance if found, None otherwise.
    """
    stmt = select(Project).where(Project.id == project_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_projects(
    session: AsyncSession,
    status_filter: ProjectStatus | None = None,
) -> list[Project]:
    """List projects, newest first, optionally filtered by status."""
    stmt = select(Project)

    if status_filter is not None:
        stmt = stmt.where(Project.status == status_filter)

    stmt = stmt.order_by(Project.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def set_project_state(
    session: AsyncSession,
    project_id: UUID,
    status: ProjectStatus,
    progress: int,
) -> None:
    """Mirror a run's status and progress onto its project."""
    stmt = (
        update(Project)
        .where(Project.id == project_id)
        .values(status=status, progress=progress, updated_at=utcnow())
    )
    await session.execute(stmt)


async def delete_project(
    session: AsyncSession,
    project_id: UUID,
) -> bool:
    """Delete a project together with its runs and artifacts.

    Dependent rows are removed explicitly rather than through the foreign
    key cascade, which SQLite only honours when foreign keys are enabled.

    Returns:
        True if the project was deleted, False if not found.
    """
    await session.execute(delete(Artifact).where(Artifact.project_id == project_id))
    await session.execute(
        delete(PipelineRunRecord).where(PipelineRunRecord.project_id == project_id)
    )
    result = await session.execute(delete(Project).where(Project.id == project_id))

    deleted = result.rowcount > 0
    if deleted:
        logger.info("project_deleted", project_id=str(project_id))
    else:
        logger.warning("project_not_found", project_id=str(project_id))
    return deleted
