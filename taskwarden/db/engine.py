"""Async engine construction for the durable store."""

from __future__ import annotations

import os

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from taskwarden.config.models import DatabaseConfig
from taskwarden.db.exceptions import ConfigurationError

URL_ENV_VAR = "TASKWARDEN_DATABASE_URL"

# Accepted driver names mapped to the async driver actually used.
_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgresql+asyncpg": "postgresql+asyncpg",
    "sqlite+aiosqlite": "sqlite+aiosqlite",
}


def resolve_url(database_url: str | None = None) -> URL:
    """Parse *database_url* (or TASKWARDEN_DATABASE_URL) and pin its async driver.

    Raises:
        ConfigurationError: No URL is set, it cannot be parsed, or the driver
            is neither PostgreSQL nor sqlite+aiosqlite.
    """
    raw = (database_url or os.environ.get(URL_ENV_VAR, "")).strip()
    if not raw:
        raise ConfigurationError(f"Database URL not set. Set {URL_ENV_VAR} or database.url.")
    try:
        url = make_url(raw)
    except ArgumentError as exc:
        raise ConfigurationError("Database URL could not be parsed.") from exc
    drivername = _ASYNC_DRIVERS.get(url.drivername)
    if drivername is None:
        raise ConfigurationError(
            f"Unsupported database driver '{url.drivername}': use postgresql:// "
            "(asyncpg) or sqlite+aiosqlite:// for Lite mode."
        )
    return url.set(drivername=drivername)


def is_sqlite(url: URL) -> bool:
    return url.get_backend_name() == "sqlite"


def create_engine(
    database_url: str | None = None,
    *,
    settings: DatabaseConfig | None = None,
    echo: bool | None = None,
) -> AsyncEngine:
    """Create the async engine for the durable store.

    Args:
        database_url: Explicit URL; falls back to ``settings.url`` and then
            TASKWARDEN_DATABASE_URL.
        settings: Pool sizing and echo flag. Pool options are ignored for
            sqlite, which has no server-side connection limit.
        echo: Overrides ``settings.echo`` when given.

    Raises:
        ConfigurationError: URL missing or invalid.
    """
    cfg = settings or DatabaseConfig()
    url = resolve_url(database_url or cfg.url or None)
    echo_sql = cfg.echo if echo is None else echo
    if is_sqlite(url):
        return create_async_engine(url, echo=echo_sql)
    return create_async_engine(
        url,
        echo=echo_sql,
        pool_size=cfg.pool_size,
        max_overflow=cfg.max_overflow,
        pool_timeout=cfg.pool_timeout_seconds,
        pool_recycle=cfg.pool_recycle_seconds,
        pool_pre_ping=True,
    )
