"""Main CLI entry point for Docforge.

Usage:
    docforge db init
    docforge project create "Chat" -d "a chat app with a websocket gateway"
    docforge run start <project-id>
    docforge run status <run-id>
    docforge project delete <project-id> --yes
    docforge serve
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Annotated, Any, Optional, TypeVar

import typer
from rich.console import Console

from docforge.cli import db as db_cli
from docforge.cli import project as project_cli
from docforge.cli import run as run_cli
from docforge.config import DocforgeConfig, load_config
from docforge.database.connection import get_engine, get_session_factory
from docforge.logging import setup_logging

app = typer.Typer(
    name="docforge",
    help="Docforge: documentation repository generation pipeline",
    no_args_is_help=True,
)

app.add_typer(project_cli.app, name="project", help="Manage projects")
app.add_typer(run_cli.app, name="run", help="Start and control pipeline runs")
app.add_typer(db_cli.app, name="db", help="Database maintenance")

console = Console()

T = TypeVar("T")


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded Docforge configuration
        engine: Async SQLAlchemy engine
        session_factory: Factory for creating database sessions
    """

    def __init__(self, config: DocforgeConfig):
        self.config = config
        self.engine = get_engine(config.database)
        self.session_factory = get_session_factory(self.engine)

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run a coroutine to completion, then close pooled connections."""

        async def _main() -> T:
            try:
                return await coro
            finally:
                await self.engine.dispose()

        return asyncio.run(_main())


_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Return the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: DocforgeConfig) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config)
    return _app_context


@app.command()
def serve(
    host: Annotated[
        Optional[str],
        typer.Option("--host", "-h", help="Host to bind to (default from config)"),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to bind to (default from config)"),
    ] = None,
) -> None:
    """Start the Docforge HTTP API with uvicorn."""
    import uvicorn

    from docforge.web.app import create_app

    config = get_app_context().config
    bind_host = host or config.web.host
    bind_port = port or config.web.port

    console.print("[bold cyan]Starting Docforge API[/bold cyan]")
    console.print(f"[dim]Host:[/dim] {bind_host}")
    console.print(f"[dim]Port:[/dim] {bind_port}")
    console.print()

    uvicorn.run(
        create_app(config),
        host=bind_host,
        port=bind_port,
        log_level=config.logging.level.lower(),
    )


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Load configuration, configure logging, and open the database."""
    try:
        config = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)

    log_config = config.logging
    if verbose:
        log_config = log_config.model_copy(update={"level": "DEBUG"})
    # command output owns stdout
    setup_logging(log_config, stream=sys.stderr)

    try:
        initialize_context(config)
    except Exception as e:
        console.print(f"[red]Error initializing application:[/red] {e}")
        raise typer.Exit(code=1)

    if verbose:
        console.print("[dim]Debug logging enabled[/dim]", highlight=False)


if __name__ == "__main__":
    app()
