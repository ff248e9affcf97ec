"""Recurring scheduler: one armed timer per enabled task, re-armed after every fire."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from taskwarden.config.models import SchedulerConfig
from taskwarden.errors import PermissionDeniedError, StoreUnavailableError, TaskNotFoundError
from taskwarden.scheduling.models import ScheduledTask, utcnow
from taskwarden.scheduling.schedule import calculate_next_run

if TYPE_CHECKING:
    from taskwarden.governance.permissions import PermissionOracle
    from taskwarden.scheduling.runner import ExecutorRunner
    from taskwarden.store.base import DurableStore

logger = logging.getLogger(__name__)


@dataclass
class _ArmedTimer:
    handle: asyncio.TimerHandle
    token: object
    fire_at: datetime


class Scheduler:
    """Arms timers for enabled tasks and hands fired tasks to the runner.

    The armed-timer map is only mutated while holding ``_lock``. Each timer
    carries a token so a fire that lost a race with re-arming is ignored.
    """

    def __init__(
        self,
        store: DurableStore,
        runner: ExecutorRunner,
        permissions: PermissionOracle,
        *,
        settings: SchedulerConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._runner = runner
        self._permissions = permissions
        self._settings = settings or SchedulerConfig()
        self._clock = clock
        self._armed: dict[str, _ArmedTimer] = {}
        self._lock = asyncio.Lock()
        self._fires: set[asyncio.Task[None]] = set()
        self._denied: set[str] = set()
        self._closed = False

    @property
    def fallback_interval(self) -> timedelta:
        return timedelta(seconds=self._settings.fallback_interval_seconds)

    def armed_task_ids(self) -> list[str]:
        return sorted(self._armed)

    def is_armed(self, task_id: str) -> bool:
        return task_id in self._armed

    def next_fire_at(self, task_id: str) -> datetime | None:
        armed = self._armed.get(task_id)
        return armed.fire_at if armed is not None else None

    def denied_task_ids(self) -> list[str]:
        return sorted(self._denied)

    @property
    def in_flight(self) -> int:
        return len(self._fires)

    def open(self) -> None:
        """Allow arming again after :meth:`shutdown`."""
        self._closed = False

    async def load_active_tasks(self) -> int:
        """Arm every enabled task, highest priority first; return how many were armed.

        Raises:
            StoreUnavailableError: Tasks could not be read. Timers already
                armed are left as they are.
        """
        try:
            tasks = await self._store.list_tasks(enabled=True)
        except StoreUnavailableError:
            logger.error("Could not load scheduled tasks from the store")
            raise
        tasks.sort(key=lambda t: t.priority.rank, reverse=True)
        armed = 0
        for task in tasks:
            try:
                if await self.schedule_task(task) is not None:
                    armed += 1
            except Exception:
                logger.exception("Failed to schedule task id=%s name=%s; skipped", task.id, task.name)
        logger.info("Loaded %d enabled task(s), armed %d", len(tasks), armed)
        return armed

    async def schedule_task(self, task: ScheduledTask) -> datetime | None:
        """Arm *task* and return its next run, or None when it was not armed.

        Permission denials are soft skips: the task stays enabled and is
        retried by :meth:`retry_denied`.
        """
        if not task.enabled:
            await self._disarm(task.id)
            return None
        if not await self._permissions.can_run(task.owner_id, task.task_type):
            self._denied.add(task.id)
            await self._disarm(task.id)
            logger.info("%s; task id=%s skipped", PermissionDeniedError(task.owner_id, task.task_type.value), task.id)
            return None
        self._denied.discard(task.id)

        now = self._clock()
        next_run = task.next_run
        if next_run is None or next_run <= now:
            next_run = calculate_next_run(task.schedule, now, fallback_interval=self.fallback_interval)
            await self._store.update_next_run(task.id, next_run)
        await self._arm(task.id, next_run, now)
        logger.debug("Armed task id=%s next_run=%s", task.id, next_run.isoformat())
        return next_run

    async def reschedule(self, task_id: str) -> datetime | None:
        """Recompute and persist ``next_run`` after a run, re-arming enabled tasks."""
        now = self._clock()
        try:
            task = await self._store.get_task(task_id)
            if task is None:
                return None
            next_run = calculate_next_run(task.schedule, now, fallback_interval=self.fallback_interval)
            await self._store.update_next_run(task_id, next_run)
        except StoreUnavailableError as exc:
            logger.error("Could not reschedule task id=%s, retrying later: %s", task_id, exc)
            await self._arm(task_id, now + self.fallback_interval, now)
            return None
        if not task.enabled:
            return next_run
        task.next_run = next_run
        return await self.schedule_task(task)

    async def pause_task(self, task_id: str) -> None:
        """Disable *task_id* and disarm its timer; an in-flight run is not touched."""
        if not await self._store.set_task_enabled(task_id, False):
            raise TaskNotFoundError(task_id)
        await self._disarm(task_id)
        self._denied.discard(task_id)
        logger.info("Paused task id=%s", task_id)

    async def resume_task(self, task_id: str) -> datetime | None:
        """Enable *task_id* and arm it again."""
        if not await self._store.set_task_enabled(task_id, True):
            raise TaskNotFoundError(task_id)
        task = await self._store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        logger.info("Resumed task id=%s", task_id)
        return await self.schedule_task(task)

    async def remove_task(self, task_id: str) -> bool:
        """Disarm and delete *task_id*; return False if it did not exist."""
        await self._disarm(task_id)
        self._denied.discard(task_id)
        removed = await self._store.delete_task(task_id)
        if removed:
            logger.info("Removed task id=%s", task_id)
        return removed

    async def retry_denied(self) -> int:
        """Re-check tasks previously skipped for permission reasons."""
        armed = 0
        for task_id in list(self._denied):
            task = await self._store.get_task(task_id)
            if task is None or not task.enabled:
                self._denied.discard(task_id)
                continue
            if await self.schedule_task(task) is not None:
                armed += 1
        return armed

    async def shutdown(self, *, timeout: float | None = None) -> None:
        """Cancel all timers and wait for in-flight fires.

        Fires still running after *timeout* seconds are cancelled.
        """
        async with self._lock:
            self._closed = True
            for armed in self._armed.values():
                armed.handle.cancel()
            self._armed.clear()
        fires = list(self._fires)
        if not fires:
            return
        _, pending = await asyncio.wait(fires, timeout=timeout)
        for fire in pending:
            fire.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Scheduler stopped (%d in-flight run(s) cancelled)", len(pending))

    async def _arm(self, task_id: str, fire_at: datetime, now: datetime) -> None:
        delay = max(0.0, (fire_at - now).total_seconds())
        loop = asyncio.get_running_loop()
        token = object()
        async with self._lock:
            if self._closed:
                return
            existing = self._armed.pop(task_id, None)
            if existing is not None:
                existing.handle.cancel()
            handle = loop.call_later(delay, self._on_timer, task_id, token)
            self._armed[task_id] = _ArmedTimer(handle=handle, token=token, fire_at=fire_at)

    async def _disarm(self, task_id: str) -> None:
        async with self._lock:
            existing = self._armed.pop(task_id, None)
            if existing is not None:
                existing.handle.cancel()

    def _on_timer(self, task_id: str, token: object) -> None:
        fire = asyncio.create_task(self._fire(task_id, token), name=f"taskwarden-fire:{task_id}")
        self._fires.add(fire)
        fire.add_done_callback(self._fires.discard)

    async def _fire(self, task_id: str, token: object) -> None:
        async with self._lock:
            armed = self._armed.get(task_id)
            if armed is None or armed.token is not token:
                return
            del self._armed[task_id]

        try:
            task = await self._store.get_task(task_id)
        except StoreUnavailableError as exc:
            logger.error("Could not load task id=%s for its run: %s", task_id, exc)
            now = self._clock()
            await self._arm(task_id, now + self.fallback_interval, now)
            return
        if task is None or not task.enabled:
            logger.info("Task id=%s removed or paused before its run; not executed", task_id)
            return

        try:
            await self._runner.run(task)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Unhandled error running task id=%s", task_id)
        try:
            await self.reschedule(task_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Could not reschedule task id=%s, retrying later", task_id)
            now = self._clock()
            await self._arm(task_id, now + self.fallback_interval, now)
