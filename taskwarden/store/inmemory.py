"""In-memory durable store for Lite Mode and tests.

Drop-in replacement for :class:`SqlAlchemyStore`. Every read and write copies
the record so callers never share mutable state with the store. Records are
lost on process exit.
"""

from __future__ import annotations

import copy
import itertools
from datetime import datetime, timezone

from taskwarden.governance.approval import ApprovalRequest, ApprovalStatus
from taskwarden.scheduling.models import ScheduledTask, TaskExecution, utcnow

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class InMemoryStore:
    """Dict-backed implementation of :class:`DurableStore`."""

    def __init__(self) -> None:
        self._tasks: dict[str, ScheduledTask] = {}
        self._executions: dict[str, TaskExecution] = {}
        self._execution_seq: dict[str, int] = {}
        self._approvals: dict[str, ApprovalRequest] = {}
        self._seq = itertools.count()

    # tasks

    async def save_task(self, task: ScheduledTask) -> None:
        self._tasks[task.id] = copy.deepcopy(task)

    async def get_task(self, task_id: str) -> ScheduledTask | None:
        task = self._tasks.get(task_id)
        return copy.deepcopy(task) if task is not None else None

    async def list_tasks(
        self,
        *,
        enabled: bool | None = None,
        owner_id: str | None = None,
    ) -> list[ScheduledTask]:
        rows = list(self._tasks.values())
        if enabled is not None:
            rows = [t for t in rows if t.enabled == enabled]
        if owner_id is not None:
            rows = [t for t in rows if t.owner_id == owner_id]
        rows.sort(key=lambda t: t.created_at)
        return [copy.deepcopy(t) for t in rows]

    async def delete_task(self, task_id: str) -> bool:
        existed = self._tasks.pop(task_id, None) is not None
        for execution_id in [e.id for e in self._executions.values() if e.task_id == task_id]:
            self._executions.pop(execution_id, None)
            self._execution_seq.pop(execution_id, None)
        return existed

    async def set_task_enabled(self, task_id: str, enabled: bool) -> bool:
        task = self._tasks.get(task_id)
        if task is None:
            return False
        if task.enabled != enabled:
            task.enabled = enabled
            task.updated_at = utcnow()
        return True

    async def update_next_run(self, task_id: str, next_run: datetime | None) -> None:
        task = self._tasks.get(task_id)
        if task is not None:
            task.next_run = next_run

    async def update_last_run(self, task_id: str, last_run: datetime) -> None:
        task = self._tasks.get(task_id)
        if task is not None:
            task.last_run = last_run

    async def increment_task_success(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is not None:
            task.run_count += 1
            task.success_count += 1

    async def increment_task_failure(self, task_id: str) -> None:
        task = self._tasks.get(task_id)
        if task is not None:
            task.run_count += 1
            task.failure_count += 1

    # executions

    async def save_execution(self, execution: TaskExecution) -> None:
        if execution.id not in self._execution_seq:
            self._execution_seq[execution.id] = next(self._seq)
        self._executions[execution.id] = copy.deepcopy(execution)

    async def list_executions(self, task_id: str, *, limit: int | None = None) -> list[TaskExecution]:
        rows = [e for e in self._executions.values() if e.task_id == task_id]
        rows.sort(key=lambda e: (e.started_at or _EPOCH, self._execution_seq[e.id]), reverse=True)
        if limit is not None:
            rows = rows[: max(0, limit)]
        return [copy.deepcopy(e) for e in rows]

    async def delete_executions_before(self, cutoff: datetime) -> int:
        stale = [
            e.id
            for e in self._executions.values()
            if e.is_terminal and e.started_at is not None and e.started_at < cutoff
        ]
        for execution_id in stale:
            del self._executions[execution_id]
            self._execution_seq.pop(execution_id, None)
        return len(stale)

    # approvals

    async def save_approval(
        self,
        request: ApprovalRequest,
        *,
        expected_status: ApprovalStatus | None = None,
    ) -> bool:
        if expected_status is not None:
            current = self._approvals.get(request.id)
            if current is None or current.status != expected_status:
                return False
        self._approvals[request.id] = copy.deepcopy(request)
        return True

    async def get_approval(self, request_id: str) -> ApprovalRequest | None:
        request = self._approvals.get(request_id)
        return copy.deepcopy(request) if request is not None else None

    async def list_approvals(
        self,
        *,
        owner_id: str | None = None,
        status: ApprovalStatus | None = None,
        task_id: str | None = None,
        action_type: str | None = None,
    ) -> list[ApprovalRequest]:
        rows = list(self._approvals.values())
        if owner_id is not None:
            rows = [r for r in rows if r.owner_id == owner_id]
        if status is not None:
            rows = [r for r in rows if r.status == status]
        if task_id is not None:
            rows = [r for r in rows if r.task_id == task_id]
        if action_type is not None:
            rows = [r for r in rows if r.action_type == action_type]
        rows.sort(key=lambda r: r.requested_at, reverse=True)
        return [copy.deepcopy(r) for r in rows]

    async def expire_pending_approvals(self, now: datetime) -> int:
        count = 0
        for request in self._approvals.values():
            if request.status == ApprovalStatus.PENDING and request.expires_at <= now:
                request.status = ApprovalStatus.EXPIRED
                count += 1
        return count
