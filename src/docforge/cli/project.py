"""Project management CLI commands."""

from __future__ import annotations

import json
from typing import Annotated, Optional
from uuid import UUID

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from docforge.database.store import PipelineStore
from docforge.errors import ActiveRunExistsError, ProjectNotFoundError

app = typer.Typer(help="Project management commands")
console = Console()

STATUS_COLORS = {
    "pending": "dim",
    "generating": "yellow",
    "complete": "green",
    "failed": "red",
    "cancelled": "magenta",
}


@app.command()
def create(
    name: Annotated[str, typer.Argument(help="Project name")],
    description: Annotated[
        str,
        typer.Option("--description", "-d", help="What the project is"),
    ] = "",
    technologies: Annotated[
        Optional[list[str]],
        typer.Option("--tech", "-t", help="Technology the project uses (repeatable)"),
    ] = None,
) -> None:
    """Create a new project."""
    from docforge.main import get_app_context

    ctx = get_app_context()
    store = PipelineStore(ctx.session_factory)

    try:
        project = ctx.run(store.create_project(name, description, technologies or []))
    except Exception as e:
        console.print(f"[red]Error creating project:[/red] {e}")
        raise typer.Exit(code=1)

    panel = Panel(
        f"[green]Project created[/green]\n\n"
        f"[bold]ID:[/bold] {project.id}\n"
        f"[bold]Name:[/bold] {project.name}\n"
        f"[bold]Technologies:[/bold] {', '.join(project.technologies) or '-'}",
        title="Project Created",
        border_style="green",
    )
    console.print(panel)


@app.command("list")
def list_projects(
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (table or json)"),
    ] = "table",
) -> None:
    """List all projects."""
    from docforge.main import get_app_context

    ctx = get_app_context()
    store = PipelineStore(ctx.session_factory)

    try:
        projects = ctx.run(store.list_projects())
    except Exception as e:
        console.print(f"[red]Error listing projects:[/red] {e}")
        raise typer.Exit(code=1)

    if format == "json":
        output = [
            {
                "id": str(p.id),
                "name": p.name,
                "status": p.status.value,
                "progress": p.progress,
                "created_at": p.created_at.isoformat(),
            }
            for p in projects
        ]
        print(json.dumps(output, indent=2))
        return

    if not projects:
        console.print("[yellow]No projects found[/yellow]")
        return

    table = Table(title="Projects")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Created", style="dim")

    for p in projects:
        color = STATUS_COLORS.get(p.status.value, "white")
        table.add_row(
            str(p.id),
            p.name,
            f"[{color}]{p.status.value}[/{color}]",
            f"{p.progress}%",
            p.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command()
def delete(
    project_id: Annotated[str, typer.Argument(help="Project UUID")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt"),
    ] = False,
) -> None:
    """Delete a project with its runs and artifacts."""
    from docforge.main import get_app_context

    try:
        pid = UUID(project_id)
    except ValueError:
        console.print(f"[red]Invalid project UUID:[/red] {project_id}")
        raise typer.Exit(code=1)

    if not yes and not typer.confirm(f"Delete project {pid} and all of its runs?"):
        console.print("[yellow]Aborted[/yellow]")
        raise typer.Exit(code=1)

    ctx = get_app_context()
    store = PipelineStore(ctx.session_factory)

    try:
        ctx.run(store.delete_project(pid))
    except (ProjectNotFoundError, ActiveRunExistsError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    console.print(f"[green]Project {pid} deleted[/green]")
