"""Artifact query functions for Docforge.

Artifacts are only ever inserted. Reads return the latest row per
(project, stage) by insertion sequence.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docforge.database.models.artifact import Artifact

logger = structlog.get_logger(__name__)


async def insert_artifact(
    session: AsyncSession,
    project_id: UUID,
    run_id: UUID,
    stage_kind: str,
    content: Any,
) -> Artifact:
    """Append an artifact row."""
    artifact = Artifact(
        project_id=project_id,
        run_id=run_id,
        stage_kind=stage_kind,
        content=content,
    )
    session.add(artifact)
    await session.flush()

    logger.debug(
        "artifact_inserted",
        artifact_id=artifact.id,
        run_id=str(run_id),
        stage=stage_kind,
    )
    return artifact


async def get_latest_artifact(
    session: AsyncSession,
    project_id: UUID,
    stage_kind: str,
) -> Artifact | None:
    """Return the most recently inserted artifact for a project stage."""
    stmt = (
        select(Artifact)
        .where(Artifact.project_id == project_id, Artifact.stage_kind == stage_kind)
        .order_by(Artifact.id.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_latest_artifacts(
    session: AsyncSession,
    project_id: UUID,
    stage_kinds: Iterable[str],
) -> dict[str, Any]:
    """Return the latest content per stage for the requested stages."""
    kinds = list(stage_kinds)
    if not kinds:
        return {}
    stmt = (
        select(Artifact.stage_kind, Artifact.content)
        .where(Artifact.project_id == project_id, Artifact.stage_kind.in_(kinds))
        .order_by(Artifact.id)
    )
    result = await session.execute(stmt)
    latest: dict[str, Any] = {}
    for stage_kind, content in result.all():
        latest[stage_kind] = content
    return latest


async def list_run_artifacts(session: AsyncSession, run_id: UUID) -> list[Artifact]:
    """List every artifact committed by a run in insertion order."""
    stmt = select(Artifact).where(Artifact.run_id == run_id).order_by(Artifact.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())
