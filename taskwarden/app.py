"""TaskWarden application object: wires the components and exposes the control surface."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from taskwarden.capabilities import CapabilityExecutor
from taskwarden.config.listeners import (
    register_approval_reload_listener,
    register_runner_reload_listener,
)
from taskwarden.config.manager import ConfigManager
from taskwarden.config.models import TaskwardenConfig
from taskwarden.db import create_engine, create_session_factory
from taskwarden.errors import TaskNotFoundError, TaskValidationError
from taskwarden.governance.approval import ApprovalGate, ApprovalRequest, ApprovalStats, ApprovalStatus
from taskwarden.governance.permissions import PermissionOracle, StaticPermissionOracle
from taskwarden.governance.risk_assessor import RiskAssessor
from taskwarden.scheduling.models import (
    Frequency,
    Schedule,
    ScheduledTask,
    TaskExecution,
    TaskPriority,
    TaskType,
    utcnow,
)
from taskwarden.scheduling.queue import AdHocTaskQueue
from taskwarden.scheduling.runner import ExecutorRunner
from taskwarden.scheduling.schedule import validate_cron_expression
from taskwarden.scheduling.scheduler import Scheduler
from taskwarden.store.base import DurableStore
from taskwarden.store.sql import SqlAlchemyStore

logger = logging.getLogger(__name__)


@dataclass
class TaskStatus:
    """Snapshot of one task with its most recent executions."""

    task: ScheduledTask
    recent_executions: list[TaskExecution] = field(default_factory=list)
    armed: bool = False
    running: bool = False

    def to_dict(self) -> dict[str, Any]:
        task = self.task
        return {
            "task": {
                "id": task.id,
                "name": task.name,
                "owner_id": task.owner_id,
                "task_type": task.task_type.value,
                "frequency": task.schedule.frequency.value,
                "cron_expression": task.schedule.cron_expression,
                "timezone": task.schedule.timezone,
                "enabled": task.enabled,
                "priority": task.priority.value,
                "last_run": task.last_run.isoformat() if task.last_run else None,
                "next_run": task.next_run.isoformat() if task.next_run else None,
                "run_count": task.run_count,
                "success_count": task.success_count,
                "failure_count": task.failure_count,
            },
            "recent_executions": [
                {
                    "id": e.id,
                    "status": e.status.value,
                    "started_at": e.started_at.isoformat() if e.started_at else None,
                    "duration_ms": e.duration_ms,
                    "attempts": e.attempts,
                    "error": e.error,
                }
                for e in self.recent_executions
            ],
            "armed": self.armed,
            "running": self.running,
        }


class TaskWarden:
    """Scheduler, runner, approval gate and ad-hoc queue behind one control surface.

    Construct once at process start and pass it to whatever serves requests;
    there is no process-wide instance.
    """

    def __init__(
        self,
        *,
        store: DurableStore,
        executor: CapabilityExecutor,
        permissions: PermissionOracle | None = None,
        config: TaskwardenConfig | None = None,
        risk_assessor: RiskAssessor | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or TaskwardenConfig()
        self.store = store
        self._clock = clock
        self.gate = ApprovalGate(
            store,
            executor,
            settings=self.config.approval,
            assessor=risk_assessor,
            clock=clock,
        )
        self.runner = ExecutorRunner(
            store,
            executor,
            gate=self.gate,
            settings=self.config.executor,
            clock=clock,
            sleep=sleep,
        )
        self.scheduler = Scheduler(
            store,
            self.runner,
            permissions or StaticPermissionOracle(),
            settings=self.config.scheduler,
            clock=clock,
        )
        self.queue = AdHocTaskQueue(self.runner)
        self._maintenance_task: asyncio.Task[None] | None = None
        self._started = False

    @classmethod
    def from_config(
        cls,
        executor: CapabilityExecutor,
        *,
        config: TaskwardenConfig | None = None,
        permissions: PermissionOracle | None = None,
    ) -> TaskWarden:
        """Build a TaskWarden backed by the SQL store named in ``database.url``."""
        cfg = config or ConfigManager.instance().get()
        engine = create_engine(settings=cfg.database)
        store = SqlAlchemyStore(create_session_factory(engine))
        return cls(store=store, executor=executor, permissions=permissions, config=cfg)

    def bind_config(self, manager: ConfigManager) -> None:
        """Follow hot reloads of approval, executor and retention settings."""
        register_approval_reload_listener(self.gate, manager)
        register_runner_reload_listener(self.runner, manager)

        def _on_change(_old: TaskwardenConfig, new: TaskwardenConfig) -> None:
            self.config = new

        manager.on_change(_on_change)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def build_task(
        self,
        *,
        owner_id: str,
        target_id: str,
        task_type: TaskType | str,
        frequency: Frequency | str,
        name: str,
        cron_expression: str | None = None,
        timezone: str | None = None,
        parameters: dict[str, Any] | None = None,
        conditions: dict[str, Any] | None = None,
        priority: TaskPriority | str = TaskPriority.MEDIUM,
        max_retries: int | None = None,
        timeout_ms: int | None = None,
        description: str = "",
        enabled: bool = True,
        task_id: str | None = None,
    ) -> ScheduledTask:
        """Construct a validated task using configured defaults for omitted fields."""
        extra: dict[str, Any] = {"id": task_id} if task_id is not None else {}
        return ScheduledTask(
            owner_id=owner_id,
            target_id=target_id,
            task_type=task_type,  # type: ignore[arg-type]
            schedule=Schedule(
                frequency=frequency,  # type: ignore[arg-type]
                cron_expression=cron_expression,
                timezone=timezone or self.config.scheduler.default_timezone,
            ),
            name=name,
            description=description,
            enabled=enabled,
            priority=priority,  # type: ignore[arg-type]
            max_retries=self.config.executor.default_max_retries if max_retries is None else max_retries,
            timeout_ms=self.config.executor.default_timeout_ms if timeout_ms is None else timeout_ms,
            parameters=parameters or {},
            conditions=conditions,
            **extra,
        )

    async def add_task(self, task: ScheduledTask) -> ScheduledTask:
        """Persist *task* and arm it when running; re-adding the same id is a no-op.

        Raises:
            TaskValidationError: A custom schedule whose cron expression does not parse.
        """
        existing = await self.store.get_task(task.id)
        if existing is not None:
            return existing
        cron = task.schedule.cron_expression
        if task.schedule.frequency == Frequency.CUSTOM and not validate_cron_expression(cron or ""):
            raise TaskValidationError(f"Invalid cron expression: {cron!r}")
        now = self._clock()
        task.created_at = now
        task.updated_at = now
        task.next_run = None
        await self.store.save_task(task)
        logger.info("Added task id=%s type=%s owner=%s", task.id, task.task_type.value, task.owner_id)
        if self._started and task.enabled:
            task.next_run = await self.scheduler.schedule_task(task)
        return task

    async def remove_task(self, task_id: str) -> bool:
        return await self.scheduler.remove_task(task_id)

    async def pause_task(self, task_id: str) -> None:
        await self.scheduler.pause_task(task_id)

    async def resume_task(self, task_id: str) -> datetime | None:
        return await self.scheduler.resume_task(task_id)

    async def get_task_status(self, task_id: str) -> TaskStatus:
        task = await self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        executions = await self.store.list_executions(
            task_id, limit=self.config.scheduler.recent_executions_limit
        )
        return TaskStatus(
            task=task,
            recent_executions=executions,
            armed=self.scheduler.is_armed(task_id),
            running=self.runner.is_running(task_id),
        )

    async def run_task_now(self, task_id: str) -> TaskExecution:
        """Run *task_id* through the ad-hoc queue and return its execution."""
        task = await self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        execution = await self.queue.run(task)
        await self.scheduler.reschedule(task_id)
        return execution

    async def list_tasks(self, owner_id: str | None = None) -> list[ScheduledTask]:
        return await self.store.list_tasks(owner_id=owner_id)

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    async def list_approvals(
        self,
        owner_id: str,
        status: ApprovalStatus | str | None = None,
    ) -> list[ApprovalRequest]:
        return await self.gate.list_requests(owner_id, status)

    async def respond_to_approval(
        self,
        request_id: str,
        approved: bool,
        reason: str | None = None,
        modified_params: dict[str, Any] | None = None,
        *,
        owner_id: str | None = None,
    ) -> ApprovalRequest:
        return await self.gate.respond(
            request_id,
            approved,
            reason,
            modified_params,
            owner_id=owner_id,
        )

    async def cancel_approval(self, request_id: str, *, owner_id: str | None = None) -> ApprovalRequest:
        return await self.gate.cancel(request_id, owner_id=owner_id)

    async def approval_stats(self, owner_id: str, window_days: int | None = None) -> ApprovalStats:
        return await self.gate.stats(owner_id, window_days)

    async def sweep_expired_approvals(self) -> int:
        return await self.gate.expire_pending()

    # ------------------------------------------------------------------
    # Maintenance and lifecycle
    # ------------------------------------------------------------------

    async def purge_old_executions(self, retention_days: int | None = None) -> int:
        """Delete finished executions started more than *retention_days* ago."""
        days = retention_days if retention_days is not None else self.config.scheduler.retention_days
        if days < 1:
            raise ValueError("retention_days must be at least 1")
        cutoff = self._clock() - timedelta(days=days)
        deleted = await self.store.delete_executions_before(cutoff)
        if deleted:
            logger.info("Purged %d execution(s) older than %d day(s)", deleted, days)
        return deleted

    async def run_maintenance(self) -> dict[str, int]:
        """One maintenance pass: expire approvals, purge history, replay writes, retry denied tasks."""
        return {
            "expired_approvals": await self.sweep_expired_approvals(),
            "purged_executions": await self.purge_old_executions(),
            "reconciled_writes": await self.runner.reconcile(),
            "rearmed_tasks": await self.scheduler.retry_denied(),
        }

    async def start(self) -> None:
        """Load and arm enabled tasks, then start the queue and maintenance loop."""
        if self._started:
            logger.warning("TaskWarden already started")
            return
        self.scheduler.open()
        if self.config.scheduler.load_on_start:
            await self.scheduler.load_active_tasks()
        self.queue.start()
        self._maintenance_task = asyncio.create_task(self._maintenance_loop(), name="taskwarden-maintenance")
        self._started = True
        logger.info("TaskWarden started with %d armed task(s)", len(self.scheduler.armed_task_ids()))

    async def stop(self, *, timeout: float | None = 10.0) -> None:
        """Stop maintenance and the queue, disarm timers and wait for in-flight runs."""
        if self._maintenance_task is not None:
            self._maintenance_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._maintenance_task
            self._maintenance_task = None
        await self.queue.stop()
        await self.scheduler.shutdown(timeout=timeout)
        self._started = False
        logger.info("TaskWarden stopped")

    def health_status(self) -> dict[str, Any]:
        """Return a health summary of all components."""
        return {
            "started": self._started,
            "armed_tasks": len(self.scheduler.armed_task_ids()),
            "permission_skipped_tasks": len(self.scheduler.denied_task_ids()),
            "in_flight_runs": self.scheduler.in_flight,
            "running_tasks": self.runner.running_task_ids(),
            "queued_runs": self.queue.size(),
            "queue_processing": self.queue.processing,
            "pending_store_writes": self.runner.pending_write_count,
            "maintenance_running": self._maintenance_task is not None and not self._maintenance_task.done(),
        }

    async def _maintenance_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.scheduler.maintenance_interval_seconds)
            try:
                report = await self.run_maintenance()
            except Exception as exc:
                logger.exception("Maintenance pass failed: %s", exc)
            else:
                logger.debug("Maintenance pass: %s", report)
