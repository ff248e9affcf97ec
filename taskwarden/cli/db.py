"""taskwarden db: create the durable store tables."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

import taskwarden.store.models  # noqa: F401  registers tables on Base.metadata
from taskwarden.cli.common import build_engine
from taskwarden.db import Base

db_app = typer.Typer(
    name="db",
    help="Database operations: init.",
)


async def _create_tables(engine: AsyncEngine) -> list[str]:
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()
    return sorted(Base.metadata.tables)


@db_app.command("init")
def init_command(
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="Database URL (default: database.url or TASKWARDEN_DATABASE_URL).",
    ),
) -> None:
    """Create the scheduled_tasks, task_executions and approval_requests tables."""
    engine = build_engine(database_url)
    try:
        tables = asyncio.run(_create_tables(engine))
    except (SQLAlchemyError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    console = Console()
    for name in tables:
        console.print(f"[green]Ready[/green] {name}")
