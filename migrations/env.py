"""Alembic environment for the taskwarden tables (asyncpg or aiosqlite)."""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

# Import models so their tables are attached to Base.metadata for Alembic
from taskwarden.db import Base, ConfigurationError, resolve_url
from taskwarden.store.models import (  # noqa: F401
    ApprovalRequestRecord,
    ScheduledTaskRecord,
    TaskExecutionRecord,
)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _get_async_url() -> str:
    """Async driver URL from sqlalchemy.url in alembic.ini, else TASKWARDEN_DATABASE_URL."""
    try:
        url = resolve_url(config.get_main_option("sqlalchemy.url") or None)
    except ConfigurationError as exc:
        raise RuntimeError(f"Cannot run migrations: {exc}") from exc
    return url.render_as_string(hide_password=False)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (SQL only, no DB connection)."""
    context.configure(
        url=_get_async_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = create_async_engine(_get_async_url(), poolclass=pool.NullPool)
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode (connect to DB)."""
    connection = context.config.attributes.get("connection", None)
    if connection is not None:
        do_run_migrations(connection)
        return
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
