"""Pipeline run query functions for Docforge.

Provides async functions for run records, including the conditional
updates that implement the run lease. A lease is acquired with a single
UPDATE whose WHERE clause only matches when the lease is free, already
held by the caller, or expired; a zero rowcount means another live worker
holds it.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docforge.database.models.base import utcnow
from docforge.database.models.run import ACTIVE_STATES, PipelineRunRecord, RunState

logger = structlog.get_logger(__name__)


async def create_run(
    session: AsyncSession,
    project_id: UUID,
    history: list[dict[str, Any]],
    progress: int = 0,
    resumed_from: UUID | None = None,
) -> PipelineRunRecord:
    """Insert a queued run.

    Args:
        session: Active async database session.
        project_id: Project to generate.
        history: Initial transition history as JSON.
        progress: Initial progress (non-zero when artifacts are reused).
        resumed_from: Terminal run being continued, if any.

    Returns:
        The new run record.
    """
    record = PipelineRunRecord(
        project_id=project_id,
        state=RunState.queued,
        progress=progress,
        history=history,
        cancel_requested=False,
        resumed_from=resumed_from,
    )
    session.add(record)
    await session.flush()

    logger.info(
        "run_created",
        run_id=str(record.id),
        project_id=str(project_id),
        resumed_from=str(resumed_from) if resumed_from else None,
    )
    return record


async def get_run(session: AsyncSession, run_id: UUID) -> PipelineRunRecord | None:
    """Retrieve a run by ID."""
    stmt = select(PipelineRunRecord).where(PipelineRunRecord.id == run_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_active_run(
    session: AsyncSession,
    project_id: UUID,
) -> PipelineRunRecord | None:
    """Return the queued or running run of a project, if any."""
    stmt = (
        select(PipelineRunRecord)
        .where(
            PipelineRunRecord.project_id == project_id,
            PipelineRunRecord.state.in_(ACTIVE_STATES),
        )
        .order_by(PipelineRunRecord.created_at.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_runs(
    session: AsyncSession,
    project_id: UUID | None = None,
    state_filter: RunState | None = None,
) -> list[PipelineRunRecord]:
    """List runs, newest first, optionally filtered by project and state."""
    stmt = select(PipelineRunRecord)
    if project_id is not None:
        stmt = stmt.where(PipelineRunRecord.project_id == project_id)
    if state_filter is not None:
        stmt = stmt.where(PipelineRunRecord.state == state_filter)
    stmt = stmt.order_by(PipelineRunRecord.created_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_run(session: AsyncSession, run_id: UUID, **values: Any) -> int:
    """Update run columns.

    Returns:
        Number of rows updated (0 if the run does not exist).
    """
    stmt = (
        update(PipelineRunRecord)
        .where(PipelineRunRecord.id == run_id)
        .values(updated_at=utcnow(), **values)
    )
    result = await session.execute(stmt)
    return result.rowcount


async def request_cancel(session: AsyncSession, run_id: UUID) -> int:
    """Set the cooperative cancellation flag on an active run."""
    stmt = (
        update(PipelineRunRecord)
        .where(
            PipelineRunRecord.id == run_id,
            PipelineRunRecord.state.in_(ACTIVE_STATES),
        )
        .values(cancel_requested=True, updated_at=utcnow())
    )
    result = await session.execute(stmt)
    return result.rowcount


async def acquire_lease(
    session: AsyncSession,
    run_id: UUID,
    worker_id: str,
    ttl: timedelta,
    now: datetime | None = None,
) -> bool:
    """Take the run lease if it is free, already ours, or expired.

    Args:
        session: Active async database session.
        run_id: Run to lease.
        worker_id: Identifier of the acquiring worker.
        ttl: Lease time-to-live; older leases count as abandoned.
        now: Current time (defaults to UTC now).

    Returns:
        True if the lease was acquired.
    """
    now = now or utcnow()
    stale_before = now - ttl
    stmt = (
        update(PipelineRunRecord)
        .where(
            PipelineRunRecord.id == run_id,
            PipelineRunRecord.state.in_(ACTIVE_STATES),
            or_(
                PipelineRunRecord.lease_holder.is_(None),
                PipelineRunRecord.lease_holder == worker_id,
                PipelineRunRecord.lease_renewed_at.is_(None),
                PipelineRunRecord.lease_renewed_at < stale_before,
            ),
        )
        .values(lease_holder=worker_id, lease_renewed_at=now)
    )
    result = await session.execute(stmt)
    return result.rowcount > 0


async def renew_lease(
    session: AsyncSession,
    run_id: UUID,
    worker_id: str,
    now: datetime | None = None,
) -> bool:
    """Refresh the lease timestamp if the caller still holds the lease."""
    stmt = (
        update(PipelineRunRecord)
        .where(
            PipelineRunRecord.id == run_id,
            PipelineRunRecord.lease_holder == worker_id,
        )
        .values(lease_renewed_at=now or utcnow())
    )
    result = await session.execute(stmt)
    return result.rowcount > 0


async def release_lease(session: AsyncSession, run_id: UUID, worker_id: str) -> bool:
    """Clear the lease if the caller holds it."""
    stmt = (
        update(PipelineRunRecord)
        .where(
            PipelineRunRecord.id == run_id,
            PipelineRunRecord.lease_holder == worker_id,
        )
        .values(lease_holder=None, lease_renewed_at=None)
    )
    result = await session.execute(stmt)
    return result.rowcount > 0
