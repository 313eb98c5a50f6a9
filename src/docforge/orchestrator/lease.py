"""Run lease service.

Exactly one worker may advance a run at a time. The lease is stored in the
run's row and acquired with a conditional UPDATE, so acquisition is atomic
across processes. A lease that has not been renewed within the configured
TTL is considered abandoned and may be taken over, which is how a run
whose worker crashed becomes resumable.

Example:
    >>> leaser = RunLeaser(session_factory, worker_id="host-1234", ttl_seconds=900)
    >>> await leaser.acquire(run_id)
    >>> await leaser.renew(run_id)
    >>> await leaser.release(run_id)
"""

from __future__ import annotations

from datetime import timedelta
from typing import Callable
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from docforge.database.queries import run as run_queries
from docforge.errors import LeaseHeldError, RunNotFoundError

logger = structlog.get_logger(__name__)

# Type alias matching the store convention
SessionFactory = Callable[[], AsyncSession]


class RunLeaser:
    """Acquires, renews, and releases run leases.

    Attributes:
        session_factory: Callable that produces async database sessions.
        worker_id: Identifier recorded as the lease holder.
        ttl: Lease time-to-live.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        worker_id: str,
        ttl_seconds: int,
    ) -> None:
        self.session_factory = session_factory
        self.worker_id = worker_id
        self.ttl = timedelta(seconds=ttl_seconds)
        self._logger = logger.bind(component="RunLeaser", worker_id=worker_id)

    async def acquire(self, run_id: UUID) -> None:
        """Take the lease on a run.

        Succeeds when the lease is free, already held by this worker, or
        expired.

        Raises:
            RunNotFoundError: If the run does not exist.
            LeaseHeldError: If another live worker holds the lease, or the
                run is no longer active.
        """
        async with self.session_factory() as session:
            acquired = await run_queries.acquire_lease(
                session, run_id, self.worker_id, self.ttl
            )
            await session.commit()

            if acquired:
                self._logger.info("lease_acquired", run_id=str(run_id))
                return

            record = await run_queries.get_run(session, run_id)

        if record is None:
            raise RunNotFoundError(run_id)

        self._logger.warning(
            "lease_acquisition_denied",
            run_id=str(run_id),
            holder=record.lease_holder,
            state=record.state.value,
        )
        raise LeaseHeldError(run_id, record.lease_holder)

    async def renew(self, run_id: UUID) -> None:
        """Refresh the lease timestamp.

        Raises:
            LeaseHeldError: If this worker no longer holds the lease.
        """
        async with self.session_factory() as session:
            renewed = await run_queries.renew_lease(session, run_id, self.worker_id)
            await session.commit()
            if renewed:
                return
            record = await run_queries.get_run(session, run_id)

        holder = record.lease_holder if record is not None else None
        self._logger.error("lease_lost", run_id=str(run_id), holder=holder)
        raise LeaseHeldError(run_id, holder)

    async def release(self, run_id: UUID) -> bool:
        """Release the lease if this worker holds it.

        Returns:
            True if a lease was released.
        """
        async with self.session_factory() as session:
            released = await run_queries.release_lease(session, run_id, self.worker_id)
            await session.commit()

        if released:
            self._logger.info("lease_released", run_id=str(run_id))
        return released
