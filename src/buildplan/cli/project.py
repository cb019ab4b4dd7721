"""Project management CLI commands.

This module provides CLI commands for creating and listing projects, showing
their schedule metrics, and setting or clearing their baseline.
"""

from __future__ import annotations

import asyncio
import json
from typing import Annotated, Optional
from uuid import UUID

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from buildplan.database.models.project import ProjectStatus
from buildplan.database.queries.project import create_project, list_projects
from buildplan.errors import BuildplanError
from buildplan.scheduling.metrics import ScheduleState
from buildplan.scheduling.service import PhaseService

app = typer.Typer(help="Project management commands")
console = Console()

STATUS_COLORS = {
    "planning": "dim",
    "active": "green",
    "on_hold": "yellow",
    "completed": "blue",
    "cancelled": "dim",
}

SCHEDULE_COLORS = {
    ScheduleState.on_track: "green",
    ScheduleState.needs_attention: "yellow",
    ScheduleState.behind: "red",
}


def parse_uuid(value: str, label: str = "ID") -> UUID:
    """Parse a UUID argument, exiting with an error message when invalid."""
    try:
        return UUID(value)
    except ValueError:
        console.print(f"[red]Invalid {label}:[/red] {value}")
        raise typer.Exit(code=1)


@app.command()
def create(
    name: Annotated[str, typer.Argument(help="Project name")],
    slug: Annotated[
        Optional[str],
        typer.Option("--slug", help="URL-friendly identifier"),
    ] = None,
    description: Annotated[
        Optional[str],
        typer.Option("--description", "-d", help="Project description"),
    ] = None,
) -> None:
    """Create a new project."""
    from buildplan.main import get_app_context

    ctx = get_app_context()

    async def _create_project():
        async with ctx.session_factory() as session:
            return await create_project(
                session=session,
                name=name,
                organization_id=ctx.organization_id,
                slug=slug,
                description=description,
            )

    try:
        project = asyncio.run(_create_project())
    except (SQLAlchemyError, OSError) as e:
        console.print(f"[red]Error creating project:[/red] {e}")
        raise typer.Exit(code=1)

    panel = Panel(
        f"[green]Project created successfully![/green]\n\n"
        f"[bold]ID:[/bold] {project.id}\n"
        f"[bold]Name:[/bold] {project.name}\n"
        f"[bold]Status:[/bold] {project.status.value}",
        title="Project Created",
        border_style="green",
    )
    console.print(panel)


@app.command("list")
def list_command(
    status: Annotated[
        Optional[str],
        typer.Option(
            "--status",
            "-s",
            help="Filter by status (planning, active, on_hold, completed, cancelled)",
        ),
    ] = None,
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (table or json)"),
    ] = "table",
) -> None:
    """List projects."""
    from buildplan.main import get_app_context

    ctx = get_app_context()

    status_filter = None
    if status is not None:
        try:
            status_filter = ProjectStatus(status)
        except ValueError:
            console.print(
                f"[red]Invalid status:[/red] {status}. "
                f"Valid values: {', '.join(s.value for s in ProjectStatus)}"
            )
            raise typer.Exit(code=1)

    async def _list_projects():
        async with ctx.session_factory() as session:
            return await list_projects(
                session,
                organization_id=ctx.organization_id,
                status_filter=status_filter,
            )

    try:
        projects = asyncio.run(_list_projects())
    except (SQLAlchemyError, OSError) as e:
        console.print(f"[red]Error listing projects:[/red] {e}")
        raise typer.Exit(code=1)

    if format == "json":
        output = [
            {
                "id": str(p.id),
                "name": p.name,
                "status": p.status.value,
                "baseline_duration_days": p.baseline_duration_days,
            }
            for p in projects
        ]
        typer.echo(json.dumps(output, indent=2))
        return

    if not projects:
        console.print("[yellow]No projects found[/yellow]")
        return

    table = Table(title="Projects")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Status", style="magenta")
    table.add_column("Baseline", justify="right")

    for p in projects:
        color = STATUS_COLORS.get(p.status.value, "white")
        baseline = f"{p.baseline_duration_days}d" if p.has_baseline else "-"
        table.add_row(str(p.id), p.name, f"[{color}]{p.status.value}[/{color}]", baseline)

    console.print(table)


@app.command()
def metrics(
    project_id: Annotated[str, typer.Argument(help="Project UUID")],
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (table or json)"),
    ] = "table",
) -> None:
    """Show duration, completion and schedule status of a project."""
    from buildplan.main import get_app_context

    ctx = get_app_context()
    pid = parse_uuid(project_id, "project ID")

    async def _metrics():
        async with ctx.session_factory() as session:
            service = PhaseService(session, ctx.config.scheduling)
            return await service.get_project_metrics(pid, ctx.organization_id)

    try:
        result = asyncio.run(_metrics())
    except BuildplanError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    schedule = result.schedule_status
    if format == "json":
        typer.echo(
            json.dumps(
                {
                    "project_id": str(pid),
                    "total_days": result.duration.total_days,
                    "start_date": _iso(result.duration.start_date),
                    "end_date": _iso(result.duration.end_date),
                    "completion_percentage": result.completion_percentage,
                    "schedule_status": schedule.status.value,
                    "message": schedule.message,
                    "days_off": schedule.days_off,
                    "phases": [
                        {
                            "id": str(node.id),
                            "name": node.phase.name,
                            "progress": node.computed_progress,
                            "task_count": len(node.tasks),
                        }
                        for node in result.phases
                    ],
                },
                indent=2,
            )
        )
        return

    color = SCHEDULE_COLORS[schedule.status]
    console.print(
        Panel(
            f"[bold]Dates:[/bold] {result.date_range}\n"
            f"[bold]Duration:[/bold] {result.duration.total_days} days\n"
            f"[bold]Complete:[/bold] {result.completion_percentage}%\n"
            f"[bold]Schedule:[/bold] [{color}]{schedule.message}[/{color}]",
            title=result.project.name,
            border_style=color,
        )
    )

    if result.phases:
        table = Table(title="Phases")
        table.add_column("Phase", style="bold")
        table.add_column("Start")
        table.add_column("Days", justify="right")
        table.add_column("Tasks", justify="right")
        table.add_column("Progress", justify="right")
        for node in result.phases:
            table.add_row(
                node.phase.name,
                node.planned_start_date.isoformat(),
                str(node.planned_duration_days),
                str(len(node.tasks)),
                f"{node.computed_progress}%",
            )
        console.print(table)


@app.command()
def baseline(
    project_id: Annotated[str, typer.Argument(help="Project UUID")],
    clear: Annotated[
        bool,
        typer.Option("--clear", help="Remove the baseline instead of setting it"),
    ] = False,
) -> None:
    """Freeze the project's current schedule as its baseline (or clear it)."""
    from buildplan.main import get_app_context

    ctx = get_app_context()
    pid = parse_uuid(project_id, "project ID")

    async def _baseline():
        async with ctx.session_factory() as session:
            service = PhaseService(session, ctx.config.scheduling)
            if clear:
                return await service.clear_baseline(pid, ctx.organization_id)
            return await service.set_baseline(pid, ctx.organization_id)

    try:
        project = asyncio.run(_baseline())
    except BuildplanError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if clear:
        console.print(f"[green]Baseline cleared for[/green] {project.name}")
    else:
        console.print(
            f"[green]Baseline set for[/green] {project.name}: "
            f"{project.baseline_duration_days} days from "
            f"{project.baseline_start_date.isoformat()}"
        )


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None
