"""Pytest fixtures for integration tests.

Integration tests run against a file-backed SQLite database created in the
test's temporary directory. A file is used rather than ``:memory:`` so
that every pooled connection sees the same database, as concurrent
workers do in production.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from docforge.config import (
    DatabaseConfig,
    DocforgeConfig,
    LoggingConfig,
    PipelineConfig,
    RepositoryConfig,
)
from docforge.database.connection import create_all, get_engine, get_session_factory
from docforge.database.models.project import Project
from docforge.database.store import PipelineStore
from docforge.orchestrator import PipelineOrchestrator, build_orchestrator


async def no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'docforge.db'}"


@pytest.fixture
def config(tmp_path: Path, database_url: str) -> DocforgeConfig:
    """Configuration with immediate retries and output under tmp_path."""
    return DocforgeConfig(
        database=DatabaseConfig(url=database_url),
        logging=LoggingConfig(level="WARNING"),
        pipeline=PipelineConfig(
            worker_id="worker-a",
            lease_ttl_seconds=60,
            backoff_initial_seconds=0.0,
            backoff_jitter=False,
        ),
        repository=RepositoryConfig(output_dir=tmp_path / "out"),
    )


@pytest_asyncio.fixture
async def engine(config: DocforgeConfig) -> AsyncGenerator[AsyncEngine, None]:
    """Create the test engine and every table."""
    test_engine = get_engine(config.database)
    await create_all(test_engine)

    yield test_engine

    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return get_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """A session for direct query tests; rolled back afterwards."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def store(session_factory: async_sessionmaker[AsyncSession]) -> PipelineStore:
    return PipelineStore(session_factory)


@pytest_asyncio.fixture
async def project(store: PipelineStore, chat_description: str) -> Project:
    return await store.create_project("Chat", chat_description, ["python", "websockets"])


@pytest_asyncio.fixture
async def make_orchestrator(
    config: DocforgeConfig,
    session_factory: async_sessionmaker[AsyncSession],
    client: Any,
    notifier: Any,
) -> AsyncGenerator[Callable[..., PipelineOrchestrator], None]:
    """Factory building orchestrators that share the test database.

    Keyword arguments override the generation client, notifier, worker id,
    and concurrency bound. Every orchestrator is shut down on teardown.
    """
    created: list[PipelineOrchestrator] = []

    def factory(
        generation_client: Any = None,
        worker_id: str = "worker-a",
        run_notifier: Any = None,
        max_concurrent_runs: int = 4,
    ) -> PipelineOrchestrator:
        pipeline = config.pipeline.model_copy(
            update={"worker_id": worker_id, "max_concurrent_runs": max_concurrent_runs}
        )
        orchestrator = build_orchestrator(
            config.model_copy(update={"pipeline": pipeline}),
            session_factory,
            generation_client or client,
            notifier=run_notifier or notifier,
            sleep=no_sleep,
        )
        created.append(orchestrator)
        return orchestrator

    yield factory

    for orchestrator in created:
        await orchestrator.shutdown()


@pytest_asyncio.fixture
async def orchestrator(
    make_orchestrator: Callable[..., PipelineOrchestrator],
) -> PipelineOrchestrator:
    return make_orchestrator()
