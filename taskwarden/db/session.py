"""Session factory and the per-call transaction scope used by the SQL store."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from taskwarden.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Records are converted to domain objects after commit, so keep them loaded.
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@asynccontextmanager
async def transaction(factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Yield a session inside one transaction; commit on success, roll back on error.

    SQLAlchemy failures are re-raised as :class:`StoreUnavailableError`.
    """
    try:
        async with factory() as session:
            async with session.begin():
                yield session
    except SQLAlchemyError as exc:
        logger.warning("Durable store operation failed: %s", exc)
        raise StoreUnavailableError(str(exc)) from exc
