"""taskwarden executions: execution history retention."""

from __future__ import annotations

import typer
from rich.console import Console

from taskwarden.app import TaskWarden
from taskwarden.cli.common import run_with_warden

executions_app = typer.Typer(name="executions", help="Execution history maintenance.")


@executions_app.command("purge")
def purge_command(
    days: int = typer.Option(0, "--days", help="Retention in days (default: scheduler.retention_days)."),
    database_url: str | None = typer.Option(None, "--database-url", help="Database URL (default: from config/env)."),
) -> None:
    """Delete finished executions older than the retention window."""
    if days < 0:
        raise typer.BadParameter("days must be >= 0.")

    async def _purge(warden: TaskWarden) -> int:
        return await warden.purge_old_executions(days or None)

    deleted = run_with_warden(database_url, _purge)
    Console().print(f"Deleted {deleted} execution(s)")
