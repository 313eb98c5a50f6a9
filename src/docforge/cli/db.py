"""Database maintenance commands."""

from __future__ import annotations

import typer
from rich.console import Console

from docforge.database.connection import create_all

app = typer.Typer(help="Database maintenance commands")
console = Console()


@app.command()
def init() -> None:
    """Create any missing tables.

    Intended for SQLite and development databases. PostgreSQL deployments
    should run ``alembic upgrade head`` instead.
    """
    from docforge.main import get_app_context

    ctx = get_app_context()

    try:
        ctx.run(create_all(ctx.engine))
    except Exception as e:
        console.print(f"[red]Error initializing database:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]Database initialized[/green] [dim]{ctx.engine.url!r}[/dim]")
