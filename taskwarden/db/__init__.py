"""taskwarden database layer: declarative base, async engine, sessions."""

from taskwarden.db.base import Base
from taskwarden.db.engine import create_engine, is_sqlite, resolve_url
from taskwarden.db.exceptions import ConfigurationError, DatabaseError
from taskwarden.db.session import create_session_factory, transaction

__all__ = [
    "Base",
    "ConfigurationError",
    "DatabaseError",
    "create_engine",
    "create_session_factory",
    "is_sqlite",
    "resolve_url",
    "transaction",
]
