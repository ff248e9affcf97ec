"""Shared test fixtures for taskwarden."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from taskwarden.config.manager import ConfigManager
from taskwarden.scheduling.models import Schedule, ScheduledTask
from taskwarden.store.inmemory import InMemoryStore
from tests.helpers import FakeClock, RecordingRegistry, RecordingSleep

DEFAULT_ACTIONS = (
    "inventory_check",
    "price_update",
    "order_fulfill",
    "marketing_campaign",
    "data_sync",
)


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fresh ConfigManager and no ambient TASKWARDEN_* variables per test."""
    monkeypatch.delenv("TASKWARDEN_CONFIG", raising=False)
    monkeypatch.delenv("TASKWARDEN_DATABASE_URL", raising=False)
    ConfigManager._reset_for_tests()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def registry() -> RecordingRegistry:
    """Registry answering every built-in action type with ``{"ok": True}``."""
    reg = RecordingRegistry()
    for action_type in DEFAULT_ACTIONS:
        reg.register_handler(action_type, lambda params, ctx: {"ok": True})
    return reg


@pytest.fixture
def make_task() -> Callable[..., ScheduledTask]:
    """Factory for valid tasks; keyword arguments override the defaults."""

    def _make(
        *,
        frequency: str = "daily",
        cron_expression: str | None = None,
        timezone_name: str = "UTC",
        **overrides: Any,
    ) -> ScheduledTask:
        fields: dict[str, Any] = {
            "owner_id": "owner-1",
            "target_id": "shop-1.example.com",
            "task_type": "inventory_check",
            "name": "Nightly stock check",
            "schedule": Schedule(
                frequency=frequency,  # type: ignore[arg-type]
                cron_expression=cron_expression,
                timezone=timezone_name,
            ),
        }
        fields.update(overrides)
        return ScheduledTask(**fields)

    return _make
