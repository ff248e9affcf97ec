"""Durable store: contract, in-memory and SQLAlchemy implementations."""

from taskwarden.store.base import DurableStore
from taskwarden.store.inmemory import InMemoryStore
from taskwarden.store.models import (
    ApprovalRequestRecord,
    ScheduledTaskRecord,
    TaskExecutionRecord,
)
from taskwarden.store.sql import SqlAlchemyStore

__all__ = [
    "ApprovalRequestRecord",
    "DurableStore",
    "InMemoryStore",
    "ScheduledTaskRecord",
    "SqlAlchemyStore",
    "TaskExecutionRecord",
]
