"""taskwarden tasks: inspect scheduled tasks."""

from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.table import Table

from taskwarden.app import TaskStatus, TaskWarden
from taskwarden.cli.common import iso, run_with_warden
from taskwarden.errors import TaskNotFoundError
from taskwarden.scheduling.models import ScheduledTask

tasks_app = typer.Typer(name="tasks", help="Inspect scheduled tasks.")

_DB_OPTION = typer.Option(None, "--database-url", help="Database URL (default: from config/env).")


def _serialize_task(task: ScheduledTask) -> dict[str, object]:
    return {
        "id": task.id,
        "name": task.name,
        "owner_id": task.owner_id,
        "task_type": task.task_type.value,
        "frequency": task.schedule.frequency.value,
        "enabled": task.enabled,
        "priority": task.priority.value,
        "next_run": task.next_run.isoformat() if task.next_run else None,
        "run_count": task.run_count,
        "failure_count": task.failure_count,
    }


@tasks_app.command("list")
def list_command(
    owner: str = typer.Option("", "--owner", help="Only tasks owned by this user."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
    database_url: str | None = _DB_OPTION,
) -> None:
    """List scheduled tasks."""

    async def _list(warden: TaskWarden) -> list[ScheduledTask]:
        return await warden.list_tasks(owner.strip() or None)

    tasks = run_with_warden(database_url, _list)
    if as_json:
        typer.echo(json.dumps([_serialize_task(t) for t in tasks], indent=2))
        return
    table = Table(title="Scheduled Tasks", show_header=True, header_style="bold")
    for column in ("ID", "Name", "Owner", "Type", "Frequency", "Enabled", "Next run", "Runs", "Failures"):
        table.add_column(column)
    for task in tasks:
        table.add_row(
            task.id,
            task.name,
            task.owner_id,
            task.task_type.value,
            task.schedule.frequency.value,
            "yes" if task.enabled else "no",
            iso(task.next_run),
            str(task.run_count),
            str(task.failure_count),
        )
    Console().print(table)


@tasks_app.command("status")
def status_command(
    task_id: str = typer.Argument(..., help="Scheduled task id."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
    database_url: str | None = _DB_OPTION,
) -> None:
    """Show one task with its most recent executions."""

    async def _status(warden: TaskWarden) -> TaskStatus:
        return await warden.get_task_status(task_id)

    try:
        status = run_with_warden(database_url, _status)
    except TaskNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    if as_json:
        typer.echo(json.dumps(status.to_dict(), indent=2))
        return
    console = Console()
    task = status.task
    console.print(f"[bold]{task.name}[/bold] ({task.id})")
    console.print(
        f"type={task.task_type.value} frequency={task.schedule.frequency.value} "
        f"enabled={task.enabled} next_run={iso(task.next_run)} last_run={iso(task.last_run)}"
    )
    console.print(f"runs={task.run_count} success={task.success_count} failure={task.failure_count}")
    table = Table(title="Recent executions", show_header=True, header_style="bold")
    for column in ("ID", "Status", "Started", "Duration (ms)", "Attempts", "Error"):
        table.add_column(column)
    for execution in status.recent_executions:
        table.add_row(
            execution.id,
            execution.status.value,
            iso(execution.started_at),
            str(execution.duration_ms) if execution.duration_ms is not None else "—",
            str(execution.attempts),
            execution.error or "",
        )
    console.print(table)
