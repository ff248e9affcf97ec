"""Executor runner: carries one task execution from pending to a terminal state."""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Any

from taskwarden.capabilities import CapabilityContext, CapabilityExecutor
from taskwarden.config.models import ExecutorConfig
from taskwarden.errors import (
    CapabilityError,
    StoreUnavailableError,
    TaskTimeoutError,
    TaskValidationError,
)
from taskwarden.scheduling.models import (
    ExecutionStatus,
    ScheduledTask,
    TaskExecution,
    utcnow,
)
from taskwarden.scheduling.routines import plan_actions

if TYPE_CHECKING:
    from taskwarden.governance.approval import ApprovalGate
    from taskwarden.store.base import DurableStore

logger = logging.getLogger(__name__)

StoreWrite = Callable[[], Awaitable[None]]


class RetryStrategy:
    """Retry decision and delay helpers for task execution attempts."""

    @staticmethod
    def should_retry(*, error: Exception, retry_count: int, max_retries: int) -> bool:
        """Return whether a failed attempt should be retried within the same run."""
        if retry_count >= max_retries:
            return False
        if isinstance(error, CapabilityError):
            return error.retryable
        return not isinstance(error, TaskValidationError | ValueError | TypeError)

    @staticmethod
    def calculate_delay(
        retry_count: int,
        *,
        base_delay_seconds: float,
        max_delay_seconds: float = 60.0,
    ) -> float:
        """Calculate bounded exponential backoff delay in seconds."""
        delay = max(0.0, float(base_delay_seconds)) * (2 ** max(0, int(retry_count)))
        return min(delay, max(0.0, float(max_delay_seconds)))


class ExecutionLogger:
    """Append trace lines to an execution's log and mirror them to ``logging``."""

    def __init__(self, execution: TaskExecution, clock: Callable[[], datetime] = utcnow) -> None:
        self._execution = execution
        self._clock = clock

    def _emit(self, level: int, msg: str, args: tuple[Any, ...], exc_info: BaseException | None = None) -> None:
        line = msg % args if args else msg
        self._execution.logs.append(f"{self._clock().isoformat()} {logging.getLevelName(level)} {line}")
        logger.log(
            level,
            "execution_id=%s task_id=%s %s",
            self._execution.id,
            self._execution.task_id,
            line,
            exc_info=exc_info,
        )

    def info(self, msg: str, *args: Any) -> None:
        self._emit(logging.INFO, msg, args)

    def warning(self, msg: str, *args: Any) -> None:
        self._emit(logging.WARNING, msg, args)

    def error(self, msg: str, *args: Any, exc_info: BaseException | None = None) -> None:
        self._emit(logging.ERROR, msg, args, exc_info)


class ExecutorRunner:
    """Run scheduled tasks through the capability executor.

    At most one execution per task is ``running`` in this process; a second
    concurrent run of the same task is cancelled before anything dispatches.
    Store writes that fail during a run are queued and replayed in order by
    :meth:`reconcile`.
    """

    def __init__(
        self,
        store: DurableStore,
        executor: CapabilityExecutor,
        *,
        gate: ApprovalGate | None = None,
        settings: ExecutorConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._executor = executor
        self._gate = gate
        self._settings = settings or ExecutorConfig()
        self._clock = clock
        self._sleep = sleep
        self._running: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._pending_writes: deque[tuple[str, StoreWrite]] = deque()
        self._reconcile_lock = asyncio.Lock()

    @property
    def settings(self) -> ExecutorConfig:
        return self._settings

    def apply_settings(self, settings: ExecutorConfig) -> None:
        """Swap in reloaded retry settings; affects attempts started afterwards."""
        self._settings = settings
        logger.info(
            "Executor settings updated base_delay=%.2fs max_delay=%.2fs",
            settings.retry_base_delay_seconds,
            settings.retry_max_delay_seconds,
        )

    def is_running(self, task_id: str) -> bool:
        return task_id in self._running

    def running_task_ids(self) -> list[str]:
        return sorted(self._running)

    @property
    def pending_write_count(self) -> int:
        return len(self._pending_writes)

    async def run(self, task: ScheduledTask) -> TaskExecution:
        """Execute *task* once and return the finalized execution."""
        await self.reconcile()
        execution = TaskExecution(task_id=task.id, owner_id=task.owner_id, target_id=task.target_id)
        trace = ExecutionLogger(execution, self._clock)
        await self._apply([("save_execution", self._save_execution_write(execution))])

        async with self._lock:
            overlapping = task.id in self._running
            if not overlapping:
                self._running[task.id] = execution.id
        if overlapping:
            trace.warning("Task already has a running execution; cancelled")
            execution.transition(ExecutionStatus.CANCELLED, at=self._clock())
            execution.result = {"skipped": True, "reason": "overlapping execution"}
            await self._apply([("save_execution", self._save_execution_write(execution))])
            return execution

        try:
            return await self._execute(task, execution, trace)
        finally:
            async with self._lock:
                if self._running.get(task.id) == execution.id:
                    del self._running[task.id]

    async def reconcile(self) -> int:
        """Replay queued store writes in order; return how many succeeded."""
        if not self._pending_writes:
            return 0
        done = 0
        async with self._reconcile_lock:
            while self._pending_writes:
                label, write = self._pending_writes[0]
                try:
                    await write()
                except StoreUnavailableError as exc:
                    logger.warning(
                        "Reconcile stopped at %s (%d write(s) still queued): %s",
                        label,
                        len(self._pending_writes),
                        exc,
                    )
                    break
                self._pending_writes.popleft()
                done += 1
        if done:
            logger.info("Reconciled %d queued store write(s)", done)
        return done

    async def _execute(self, task: ScheduledTask, execution: TaskExecution, trace: ExecutionLogger) -> TaskExecution:
        now = self._clock()
        execution.transition(ExecutionStatus.RUNNING, at=now)
        trace.info("Started %s task '%s'", task.task_type.value, task.name)
        await self._apply([("save_execution", self._save_execution_write(execution))])
        started = time.monotonic()

        try:
            reason = self._unmet_condition(task, now)
            if reason is not None:
                # last_run stays put so min_interval_minutes counts from the last real run.
                trace.info("Conditions not met: %s", reason)
                result: dict[str, Any] = {"skipped": True, "reason": reason}
            else:
                result = await self._run_with_retries(task, execution, trace)
        except asyncio.CancelledError:
            execution.error = "cancelled"
            execution.resources_used.add(processing_time_ms=int((time.monotonic() - started) * 1000))
            execution.transition(ExecutionStatus.CANCELLED, at=self._clock())
            trace.warning("Execution cancelled")
            await self._apply([("save_execution", self._save_execution_write(execution))])
            raise
        except Exception as exc:
            execution.error = str(exc) or type(exc).__name__
            execution.resources_used.add(processing_time_ms=int((time.monotonic() - started) * 1000))
            execution.transition(ExecutionStatus.FAILED, at=self._clock())
            trace.error("Execution failed after %d attempt(s): %s", execution.attempts, execution.error, exc_info=exc)
            await self._finalize(task, execution, succeeded=False)
            return execution

        execution.result = result
        execution.resources_used.add(processing_time_ms=int((time.monotonic() - started) * 1000))
        execution.transition(ExecutionStatus.COMPLETED, at=self._clock())
        trace.info("Completed in %sms", execution.duration_ms)
        if result.get("skipped"):
            await self._apply([("save_execution", self._save_execution_write(execution))])
        else:
            await self._finalize(task, execution, succeeded=True)
        return execution

    @staticmethod
    def _unmet_condition(task: ScheduledTask, now: datetime) -> str | None:
        if task.typed_conditions is None:
            return None
        return task.typed_conditions.unmet_reason(now=now, last_run=task.last_run, tz=task.schedule.tzinfo)

    async def _run_with_retries(
        self,
        task: ScheduledTask,
        execution: TaskExecution,
        trace: ExecutionLogger,
    ) -> dict[str, Any]:
        retry_count = 0
        completed: list[dict[str, Any]] = []
        while True:
            execution.attempts = retry_count + 1
            try:
                return await self._attempt(task, execution, trace, completed)
            except Exception as exc:
                if not RetryStrategy.should_retry(
                    error=exc,
                    retry_count=retry_count,
                    max_retries=task.max_retries,
                ):
                    raise
                delay = RetryStrategy.calculate_delay(
                    retry_count,
                    base_delay_seconds=self._settings.retry_base_delay_seconds,
                    max_delay_seconds=self._settings.retry_max_delay_seconds,
                )
                trace.warning("Attempt %d failed: %s; retrying in %.2fs", retry_count + 1, exc, delay)
                retry_count += 1
                await self._sleep(delay)

    async def _attempt(
        self,
        task: ScheduledTask,
        execution: TaskExecution,
        trace: ExecutionLogger,
        completed: list[dict[str, Any]],
    ) -> dict[str, Any]:
        try:
            return await asyncio.wait_for(self._dispatch(task, execution, trace, completed), task.timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            raise TaskTimeoutError(task.id, task.timeout_ms) from None

    async def _dispatch(
        self,
        task: ScheduledTask,
        execution: TaskExecution,
        trace: ExecutionLogger,
        completed: list[dict[str, Any]],
    ) -> dict[str, Any]:
        # Actions finished by an earlier attempt of this run are not repeated.
        for action in plan_actions(task)[len(completed) :]:
            if self._gate is not None:
                approval = await self._gate.intercept(
                    owner_id=task.owner_id,
                    target_id=task.target_id,
                    action_type=action.action_type,
                    action_data=action.action_data,
                    task_id=task.id,
                    integration_id=action.integration_id,
                    context={"task_id": task.id, "task_name": task.name, "execution_id": execution.id},
                )
                if approval is not None:
                    trace.info(
                        "Action %s needs approval (%s risk); request %s",
                        action.action_type,
                        approval.risk_level.value,
                        approval.id,
                    )
                    return {
                        "status": "awaiting_approval",
                        "approval_request_id": approval.id,
                        "action_type": action.action_type,
                        "actions": completed,
                    }
            context = CapabilityContext(
                owner_id=task.owner_id,
                target_id=task.target_id,
                integration_id=action.integration_id,
                task_id=task.id,
                execution_id=execution.id,
            )
            trace.info("Executing action %s", action.action_type)
            outcome = await self._executor.execute(action.action_type, dict(action.action_data), context)
            execution.resources_used.add(calls=outcome.calls, cost=outcome.cost)
            completed.append({"action_type": action.action_type, "data": outcome.data})
        return {"status": "completed", "task_type": task.task_type.value, "actions": completed}

    async def _finalize(self, task: ScheduledTask, execution: TaskExecution, *, succeeded: bool) -> None:
        increment = self._store.increment_task_success if succeeded else self._store.increment_task_failure
        completed_at = execution.completed_at or self._clock()
        await self._apply(
            [
                ("save_execution", self._save_execution_write(execution)),
                ("increment_task_success" if succeeded else "increment_task_failure", partial(increment, task.id)),
                ("update_last_run", partial(self._store.update_last_run, task.id, completed_at)),
            ]
        )

    def _save_execution_write(self, execution: TaskExecution) -> StoreWrite:
        return partial(self._store.save_execution, copy.deepcopy(execution))

    async def _apply(self, writes: list[tuple[str, StoreWrite]]) -> None:
        if self._pending_writes:
            self._pending_writes.extend(writes)
            return
        for index, (label, write) in enumerate(writes):
            try:
                await write()
            except StoreUnavailableError as exc:
                logger.error("Store write %s failed; queued for reconcile: %s", label, exc)
                self._pending_writes.extend(writes[index:])
                return
