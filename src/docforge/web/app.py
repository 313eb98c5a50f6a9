"""FastAPI application factory for Docforge.

The application owns one orchestrator for the lifetime of the process.
Startup creates the database engine, the generation client, and the
orchestrator and stores them in ``app.state``; shutdown stops the
orchestrator's workers (releasing their run leases) before closing the
notifiers, the client and the engine.

Example usage:
    >>> from docforge.config import DocforgeConfig
    >>> from docforge.web.app import create_app
    >>>
    >>> app = create_app(DocforgeConfig())
    >>> import uvicorn
    >>> uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from __future__ import annotations

from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from docforge import __version__
from docforge.config import DocforgeConfig
from docforge.database.connection import create_all, get_engine, get_session_factory
from docforge.integrations.generation import HttpGenerationClient
from docforge.integrations.notifications import build_notifier
from docforge.logging import get_logger
from docforge.orchestrator import build_orchestrator
from docforge.web.middleware import RequestLoggingMiddleware
from docforge.web.routes.health import create_health_router
from docforge.web.routes.projects import create_projects_router
from docforge.web.routes.runs import create_runs_router

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create and tear down the engine, generation client, and orchestrator."""
    config: DocforgeConfig = app.state.config

    logger.info("app_startup_begin", host=config.web.host, port=config.web.port)

    engine = get_engine(config.database)
    if config.database.url.startswith("sqlite"):
        # SQLite has no migration step
        await create_all(engine)
    session_factory = get_session_factory(engine)

    async with AsyncExitStack() as stack:
        client = await stack.enter_async_context(HttpGenerationClient(config.generation))
        notifier = build_notifier(config.notifications)
        stack.push_async_callback(notifier.close)
        orchestrator = build_orchestrator(config, session_factory, client, notifier=notifier)

        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.generation_client = client
        app.state.orchestrator = orchestrator

        logger.info("app_startup_complete", worker_id=config.pipeline.worker_id)
        try:
            yield
        finally:
            logger.info("app_shutdown_begin", active_runs=len(orchestrator.active_runs))
            await orchestrator.shutdown()

    await engine.dispose()
    logger.info("app_shutdown_complete")


def create_app(config: DocforgeConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Application configuration. If None, a default config is
            built from the environment.

    Returns:
        Configured FastAPI application.
    """
    if config is None:
        config = DocforgeConfig()

    app = FastAPI(
        title="Docforge",
        version=__version__,
        description="Documentation repository generation pipeline",
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(create_health_router())
    app.include_router(create_projects_router())
    app.include_router(create_runs_router())

    logger.info("app_created", cors_origins=config.web.cors_origins, version=__version__)
    return app
