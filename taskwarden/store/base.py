"""Durable store contract shared by the scheduler, runner and approval gate."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from taskwarden.governance.approval import ApprovalRequest, ApprovalStatus
from taskwarden.scheduling.models import ScheduledTask, TaskExecution


class DurableStore(Protocol):
    """Persistence for tasks, executions and approval requests.

    Implementations raise :class:`~taskwarden.errors.StoreUnavailableError`
    when the backing storage cannot be reached.
    """

    # tasks

    async def save_task(self, task: ScheduledTask) -> None: ...

    async def get_task(self, task_id: str) -> ScheduledTask | None: ...

    async def list_tasks(
        self,
        *,
        enabled: bool | None = None,
        owner_id: str | None = None,
    ) -> list[ScheduledTask]: ...

    async def delete_task(self, task_id: str) -> bool: ...

    async def set_task_enabled(self, task_id: str, enabled: bool) -> bool: ...

    async def update_next_run(self, task_id: str, next_run: datetime | None) -> None: ...

    async def update_last_run(self, task_id: str, last_run: datetime) -> None: ...

    async def increment_task_success(self, task_id: str) -> None: ...

    async def increment_task_failure(self, task_id: str) -> None: ...

    # executions

    async def save_execution(self, execution: TaskExecution) -> None: ...

    async def list_executions(self, task_id: str, *, limit: int | None = None) -> list[TaskExecution]: ...

    async def delete_executions_before(self, cutoff: datetime) -> int: ...

    # approvals

    async def save_approval(
        self,
        request: ApprovalRequest,
        *,
        expected_status: ApprovalStatus | None = None,
    ) -> bool: ...

    async def get_approval(self, request_id: str) -> ApprovalRequest | None: ...

    async def list_approvals(
        self,
        *,
        owner_id: str | None = None,
        status: ApprovalStatus | None = None,
        task_id: str | None = None,
        action_type: str | None = None,
    ) -> list[ApprovalRequest]: ...

    async def expire_pending_approvals(self, now: datetime) -> int: ...
