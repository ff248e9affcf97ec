"""Shared helpers for CLI commands that talk to the durable store."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer
from sqlalchemy.ext.asyncio import AsyncEngine

from taskwarden.app import TaskWarden
from taskwarden.capabilities import CapabilityRegistry
from taskwarden.config import ConfigManager
from taskwarden.db import ConfigurationError, create_engine, create_session_factory
from taskwarden.errors import StoreUnavailableError
from taskwarden.store.sql import SqlAlchemyStore

T = TypeVar("T")


def resolve_database_url(database_url: str | None) -> str:
    """Pick the URL from the option, then ``database.url``, then TASKWARDEN_DATABASE_URL."""
    candidates = (
        database_url,
        ConfigManager.instance().get().database.url,
        os.environ.get("TASKWARDEN_DATABASE_URL"),
    )
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    typer.echo("Error: Set TASKWARDEN_DATABASE_URL, database.url or pass --database-url.", err=True)
    raise typer.Exit(2)


def build_engine(database_url: str | None) -> AsyncEngine:
    url = resolve_database_url(database_url)
    try:
        return create_engine(url, settings=ConfigManager.instance().get().database)
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e


def build_warden(engine: AsyncEngine) -> TaskWarden:
    """TaskWarden over the SQL store; no capabilities are registered for CLI use."""
    store = SqlAlchemyStore(create_session_factory(engine))
    return TaskWarden(store=store, executor=CapabilityRegistry(), config=ConfigManager.instance().get())


def run_with_warden(database_url: str | None, action: Callable[[TaskWarden], Awaitable[T]]) -> T:
    """Run *action* against a short-lived TaskWarden and dispose the engine afterwards."""
    engine = build_engine(database_url)

    async def _impl() -> T:
        try:
            return await action(build_warden(engine))
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_impl())
    except StoreUnavailableError as e:
        typer.echo(f"Error: store unavailable: {e}", err=True)
        raise typer.Exit(1) from e


def iso(value: Any) -> str:
    return value.isoformat() if value is not None else "—"
