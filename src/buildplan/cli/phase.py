"""Phase management CLI commands.

This module provides CLI commands for listing a project's phases and tasks
and for explicitly recalculating a phase's duration from its tasks.
"""

from __future__ import annotations

import asyncio
import json
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from buildplan.cli.project import parse_uuid
from buildplan.errors import BuildplanError
from buildplan.scheduling.service import PhaseService

app = typer.Typer(help="Phase and task commands")
console = Console()


@app.command("list")
def list_command(
    project_id: Annotated[str, typer.Argument(help="Project UUID")],
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (table or json)"),
    ] = "table",
) -> None:
    """List a project's phases with their tasks."""
    from buildplan.main import get_app_context

    ctx = get_app_context()
    pid = parse_uuid(project_id, "project ID")

    async def _list_phases():
        async with ctx.session_factory() as session:
            service = PhaseService(session, ctx.config.scheduling)
            return await service.get_phases_with_tasks(pid, ctx.organization_id)

    try:
        nodes = asyncio.run(_list_phases())
    except BuildplanError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    if format == "json":
        output = [
            {
                "id": str(node.id),
                "name": node.phase.name,
                "planned_start_date": node.planned_start_date.isoformat(),
                "planned_duration_days": node.planned_duration_days,
                "duration_mode": node.phase.duration_mode.value,
                "computed_progress": node.computed_progress,
                "tasks": [
                    {
                        "id": str(task.id),
                        "name": task.name,
                        "planned_start_date": task.planned_start_date.isoformat(),
                        "planned_duration_days": task.planned_duration_days,
                        "buffer_days": task.buffer_days,
                        "status": task.status.value,
                    }
                    for task in node.tasks
                ],
            }
            for node in nodes
        ]
        typer.echo(json.dumps(output, indent=2))
        return

    if not nodes:
        console.print("[yellow]No phases found[/yellow]")
        return

    table = Table(title="Phases")
    table.add_column("Name", style="bold")
    table.add_column("Start")
    table.add_column("Days", justify="right")
    table.add_column("Mode", style="magenta")
    table.add_column("Status")
    table.add_column("Progress", justify="right")

    for node in nodes:
        table.add_row(
            node.phase.name,
            node.planned_start_date.isoformat(),
            str(node.planned_duration_days),
            node.phase.duration_mode.value,
            node.status.value,
            f"{node.computed_progress}%",
        )
        for task in node.tasks:
            table.add_row(
                f"  [dim]{task.name}[/dim]",
                task.planned_start_date.isoformat(),
                str(task.planned_duration_days),
                "",
                task.status.value,
                "",
            )

    console.print(table)


@app.command()
def recalculate(
    phase_id: Annotated[str, typer.Argument(help="Phase UUID")],
    force: Annotated[
        bool,
        typer.Option("--force", help="Recalculate even when the duration was set manually"),
    ] = False,
    format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format (table or json)"),
    ] = "table",
) -> None:
    """Recalculate a phase's duration from its tasks."""
    from buildplan.main import get_app_context

    ctx = get_app_context()
    phid = parse_uuid(phase_id, "phase ID")

    async def _recalculate():
        async with ctx.session_factory() as session:
            service = PhaseService(session, ctx.config.scheduling)
            return await service.recalculate(phid, force_update=force,
                                             organization_id=ctx.organization_id)

    try:
        result = asyncio.run(_recalculate())
    except BuildplanError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)

    calc = result.calculation
    if format == "json":
        typer.echo(
            json.dumps(
                {
                    "phase_id": str(calc.phase_id),
                    "previous_duration_days": calc.previous_duration_days,
                    "calculated_duration_days": calc.calculated_duration_days,
                    "applied": calc.applied,
                    "skip_reason": calc.skip_reason,
                    "driving_task_id": str(calc.driving_task_id) if calc.driving_task_id else None,
                    "has_overlapping_tasks": calc.has_overlapping_tasks,
                    "total_gap_days": calc.total_gap_days,
                },
                indent=2,
            )
        )
        return

    if calc.applied:
        console.print(
            f"[green]Duration updated:[/green] {calc.previous_duration_days} -> "
            f"{calc.calculated_duration_days} days"
        )
    else:
        console.print(f"[yellow]Duration unchanged[/yellow] ({calc.skip_reason})")

    if calc.task_timeline:
        table = Table(title="Task timeline")
        table.add_column("Task", style="bold")
        table.add_column("Start")
        table.add_column("End")
        table.add_column("Offset", justify="right")
        for entry in calc.task_timeline:
            marker = " *" if entry.task_id == calc.driving_task_id else ""
            table.add_row(
                f"{entry.task_name}{marker}",
                entry.start_date.isoformat(),
                entry.end_date.isoformat(),
                str(entry.offset_days),
            )
        console.print(table)
