"""Test doubles shared across the unit suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from taskwarden.capabilities import CapabilityContext, CapabilityRegistry, CapabilityResult
from taskwarden.errors import StoreUnavailableError
from taskwarden.scheduling.models import TaskType
from taskwarden.store.inmemory import InMemoryStore

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock injected into components instead of utcnow."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSleep:
    """Stand-in for asyncio.sleep that records backoff delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class RecordingRegistry(CapabilityRegistry):
    """CapabilityRegistry that remembers every call it dispatched."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, dict[str, Any], CapabilityContext]] = []

    async def execute(
        self,
        action_type: str,
        params: dict[str, Any],
        context: CapabilityContext,
    ) -> CapabilityResult:
        self.calls.append((action_type, dict(params), context))
        return await super().execute(action_type, params, context)

    def action_types(self) -> list[str]:
        return [call[0] for call in self.calls]


class FlakyStore(InMemoryStore):
    """InMemoryStore whose writes and reads fail while ``down`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.down = False
        self.fail_reads = False

    def _check(self) -> None:
        if self.down:
            raise StoreUnavailableError("connection refused")

    async def save_execution(self, execution):  # type: ignore[no-untyped-def]
        self._check()
        await super().save_execution(execution)

    async def increment_task_success(self, task_id: str) -> None:
        self._check()
        await super().increment_task_success(task_id)

    async def increment_task_failure(self, task_id: str) -> None:
        self._check()
        await super().increment_task_failure(task_id)

    async def update_last_run(self, task_id, last_run):  # type: ignore[no-untyped-def]
        self._check()
        await super().update_last_run(task_id, last_run)

    async def update_next_run(self, task_id, next_run):  # type: ignore[no-untyped-def]
        self._check()
        await super().update_next_run(task_id, next_run)

    async def list_tasks(self, *, enabled=None, owner_id=None):  # type: ignore[no-untyped-def]
        if self.fail_reads:
            raise StoreUnavailableError("connection refused")
        return await super().list_tasks(enabled=enabled, owner_id=owner_id)


class ToggleOracle:
    """Permission oracle whose answer the test flips at will."""

    def __init__(self, allowed: bool = True) -> None:
        self.allowed = allowed
        self.checked: list[tuple[str, TaskType]] = []

    async def can_run(self, owner_id: str, task_type: TaskType) -> bool:
        self.checked.append((owner_id, task_type))
        return self.allowed


async def wait_until(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
    """Poll *predicate* on the running loop until it holds or *timeout* passes."""

    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)
