"""Health check endpoints.

``GET /health/`` answers as long as the process is up; ``GET /health/ready``
also checks that the database accepts queries and reports whether the
generation service responds. Runs retry transient generation failures,
so an unreachable generation service is reported but does not make the
process unready.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text

from docforge.logging import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = get_logger(__name__)


class HealthResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    """Readiness check response.

    Attributes:
        status: "ok" or "unhealthy"
        database: "connected" or "disconnected"
        generation: "reachable", "unreachable", or "unknown" when no
            generation client is installed
        active_runs: Runs advanced by this process right now
    """

    status: str
    database: str
    generation: str = "unknown"
    active_runs: int = 0


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Dependency that retrieves the session factory from app state."""
    return request.app.state.session_factory  # type: ignore[return-value]


async def _generation_state(request: Request) -> str:
    client = getattr(request.app.state, "generation_client", None)
    if client is None:
        return "unknown"
    return "reachable" if await client.health_check() else "unreachable"


def create_health_router() -> APIRouter:
    """Create the health router.

    Routes:
        GET /health/ - Liveness check
        GET /health/ready - Readiness check with database and generation checks
    """
    router = APIRouter(prefix="/health", tags=["health"])

    @router.get("/", response_model=HealthResponse)
    async def health() -> dict[str, Any]:
        return {"status": "ok"}

    @router.get("/ready", response_model=ReadinessResponse)
    async def readiness(
        request: Request,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> dict[str, Any]:
        orchestrator = getattr(request.app.state, "orchestrator", None)
        active = len(orchestrator.active_runs) if orchestrator is not None else 0
        generation = await _generation_state(request)
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
        except Exception as exc:
            logger.warning("readiness_check_failed", error=str(exc))
            return {
                "status": "unhealthy",
                "database": "disconnected",
                "generation": generation,
                "active_runs": active,
            }

        return {
            "status": "ok",
            "database": "connected",
            "generation": generation,
            "active_runs": active,
        }

    return router
