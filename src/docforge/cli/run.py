"""Pipeline run CLI commands.

``start`` and ``resume`` advance the run in the foreground and return once
it is terminal. Interrupting them (Ctrl+C) leaves the run resumable:
the worker yields at once, releases its lease, and ``docforge run
resume`` continues from the first uncommitted stage.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, Optional, TypeVar
from uuid import UUID

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from docforge.errors import (
    ActiveRunExistsError,
    LeaseHeldError,
    ProjectNotFoundError,
    RunNotFoundError,
)
from docforge.integrations.generation import HttpGenerationClient
from docforge.integrations.notifications import build_notifier
from docforge.orchestrator import (
    InvalidTransitionError,
    PipelineOrchestrator,
    build_orchestrator,
)
from docforge.pipeline.stages import StageKind
from docforge.pipeline.status import PipelineRun

app = typer.Typer(help="Pipeline run commands")
console = Console()

T = TypeVar("T")

CALLER_ERRORS = (
    RunNotFoundError,
    ProjectNotFoundError,
    ActiveRunExistsError,
    LeaseHeldError,
    InvalidTransitionError,
)

STATUS_STYLES = {
    "queued": "dim",
    "running": "yellow",
    "complete": "green",
    "failed": "red",
    "cancelled": "magenta",
}


def _parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        console.print(f"[red]Invalid {label} UUID:[/red] {value}")
        raise typer.Exit(code=1)


async def _drive(action: Callable[[PipelineOrchestrator], Awaitable[UUID]]) -> PipelineRun:
    """Run ``action`` against a fresh orchestrator and wait for the run."""
    from docforge.main import get_app_context

    ctx = get_app_context()
    notifier = build_notifier(ctx.config.notifications)
    async with HttpGenerationClient(ctx.config.generation) as client:
        orchestrator = build_orchestrator(
            ctx.config, ctx.session_factory, client, notifier=notifier
        )
        try:
            run_id = await action(orchestrator)
            console.print(f"[dim]Advancing run {run_id}...[/dim]")
            return await orchestrator.wait(run_id)
        finally:
            await orchestrator.shutdown()
            await notifier.close()


async def _with_orchestrator(action: Callable[[PipelineOrchestrator], Awaitable[T]]) -> T:
    """Run ``action`` against an orchestrator that never calls the generator."""
    from docforge.main import get_app_context

    ctx = get_app_context()
    client = HttpGenerationClient(ctx.config.generation)
    notifier = build_notifier(ctx.config.notifications)
    orchestrator = build_orchestrator(ctx.config, ctx.session_factory, client, notifier=notifier)
    try:
        return await action(orchestrator)
    finally:
        await notifier.close()


def _foreground(action: Callable[[PipelineOrchestrator], Awaitable[UUID]]) -> PipelineRun:
    from docforge.main import get_app_context

    try:
        return get_app_context().run(_drive(action))
    except CALLER_ERRORS as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted; the run can be continued with 'docforge run resume'[/yellow]")
        raise typer.Exit(code=130)


def _print_run(run: PipelineRun, history: bool = False) -> None:
    style = STATUS_STYLES.get(run.status.kind, "white")
    lines = [
        f"[bold]Run:[/bold] {run.id}",
        f"[bold]Project:[/bold] {run.project_id}",
        f"[bold]Status:[/bold] [{style}]{run.status.kind}[/{style}]",
        f"[bold]Progress:[/bold] {run.progress}%",
    ]
    if run.current_stage is not None:
        lines.append(f"[bold]Stage:[/bold] {run.current_stage.value}")
    if run.started_at is not None:
        lines.append(f"[bold]Started:[/bold] {run.started_at.strftime('%Y-%m-%d %H:%M:%S')}")
    reason = getattr(run.status, "reason", None)
    if reason:
        lines.append(f"[bold]Reason:[/bold] {reason}")
    if run.resumed_from is not None:
        lines.append(f"[bold]Resumed from:[/bold] {run.resumed_from}")
    if run.cancel_requested and not run.is_terminal:
        lines.append("[magenta]Cancellation requested[/magenta]")
    console.print(Panel("\n".join(lines), title="Pipeline Run", border_style=style))

    if history:
        table = Table(title="History")
        table.add_column("At", style="dim")
        table.add_column("Event")
        table.add_column("Stage", style="cyan")
        table.add_column("Progress", justify="right")
        table.add_column("Detail")
        for t in run.history:
            table.add_row(
                t.at.strftime("%H:%M:%S"),
                t.event.value,
                t.stage.value if t.stage else "-",
                f"{t.progress}%",
                t.detail or "",
            )
        console.print(table)


def _exit_for(run: PipelineRun) -> None:
    if run.status.kind == "failed":
        raise typer.Exit(code=2)


@app.command()
def start(
    project_id: Annotated[str, typer.Argument(help="Project UUID")],
) -> None:
    """Start a run for a project and advance it to completion."""
    pid = _parse_uuid(project_id, "project")
    run = _foreground(lambda orchestrator: orchestrator.start(pid))
    _print_run(run)
    _exit_for(run)


@app.command()
def resume(
    run_id: Annotated[str, typer.Argument(help="Run UUID")],
) -> None:
    """Resume an interrupted, failed, or cancelled run."""
    rid = _parse_uuid(run_id, "run")
    run = _foreground(lambda orchestrator: orchestrator.resume(rid))
    _print_run(run)
    _exit_for(run)


@app.command()
def status(
    run_id: Annotated[str, typer.Argument(help="Run UUID")],
    history: Annotated[
        bool,
        typer.Option("--history", help="Show the transition history"),
    ] = False,
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (panel or json)"),
    ] = "panel",
) -> None:
    """Show the persisted state of a run."""
    from docforge.main import get_app_context

    rid = _parse_uuid(run_id, "run")
    try:
        run = get_app_context().run(_with_orchestrator(lambda o: o.status(rid)))
    except CALLER_ERRORS as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if format == "json":
        print(run.model_dump_json(indent=2))
    else:
        _print_run(run, history=history)


@app.command()
def cancel(
    run_id: Annotated[str, typer.Argument(help="Run UUID")],
) -> None:
    """Request cancellation of a run."""
    from docforge.main import get_app_context

    rid = _parse_uuid(run_id, "run")
    try:
        run = get_app_context().run(_with_orchestrator(lambda o: o.cancel(rid)))
    except CALLER_ERRORS as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if run.status.kind == "cancelled":
        console.print(f"[magenta]Run {rid} cancelled[/magenta]")
    else:
        console.print(f"[yellow]Cancellation requested; run {rid} stops before its next stage[/yellow]")


@app.command()
def schema(
    run_id: Annotated[str, typer.Argument(help="Run UUID")],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the schema to a file"),
    ] = None,
) -> None:
    """Print the communication schema produced for a run's project."""
    from docforge.main import get_app_context

    rid = _parse_uuid(run_id, "run")

    async def _load(orchestrator: PipelineOrchestrator) -> Any:
        run = await orchestrator.status(rid)
        return await orchestrator.store.get_artifact(
            run.project_id, StageKind.directory_synthesis
        )

    try:
        content = get_app_context().run(_with_orchestrator(_load))
    except CALLER_ERRORS as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if content is None:
        console.print(f"[yellow]Run {rid} has not produced a schema yet[/yellow]")
        raise typer.Exit(code=1)

    text = json.dumps(content, indent=2, sort_keys=True)
    if output is not None:
        output.write_text(text + "\n", encoding="utf-8")
        console.print(f"[green]Schema written to[/green] {output}")
    else:
        print(text)
