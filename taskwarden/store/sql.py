"""SQLAlchemy-backed durable store (PostgreSQL, or sqlite for Lite mode)."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone

from sqlalchemy import Select, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskwarden.db.session import transaction
from taskwarden.governance.approval import ApprovalRequest, ApprovalStatus
from taskwarden.governance.risk_assessor import RiskLevel
from taskwarden.scheduling.models import (
    TERMINAL_EXECUTION_STATUSES,
    ExecutionStatus,
    ResourceUsage,
    Schedule,
    ScheduledTask,
    TaskExecution,
    utcnow,
)
from taskwarden.store.models import (
    ApprovalRequestRecord,
    ScheduledTaskRecord,
    TaskExecutionRecord,
)


def _utc(value: datetime | None) -> datetime | None:
    """Normalize to aware UTC; sqlite hands back naive values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _task_to_record(task: ScheduledTask) -> ScheduledTaskRecord:
    return ScheduledTaskRecord(
        id=task.id,
        owner_id=task.owner_id,
        target_id=task.target_id,
        name=task.name,
        description=task.description,
        task_type=task.task_type.value,
        frequency=task.schedule.frequency.value,
        cron_expression=task.schedule.cron_expression,
        timezone=task.schedule.timezone,
        enabled=task.enabled,
        priority=task.priority.value,
        max_retries=task.max_retries,
        timeout_ms=task.timeout_ms,
        parameters=dict(task.parameters),
        conditions=dict(task.conditions) if task.conditions is not None else None,
        created_at=_utc(task.created_at),
        updated_at=_utc(task.updated_at),
        last_run=_utc(task.last_run),
        next_run=_utc(task.next_run),
        run_count=task.run_count,
        success_count=task.success_count,
        failure_count=task.failure_count,
    )


def _task_from_record(record: ScheduledTaskRecord) -> ScheduledTask:
    return ScheduledTask(
        id=record.id,
        owner_id=record.owner_id,
        target_id=record.target_id,
        name=record.name,
        description=record.description,
        task_type=record.task_type,
        schedule=Schedule(
            frequency=record.frequency,
            cron_expression=record.cron_expression,
            timezone=record.timezone,
        ),
        enabled=record.enabled,
        priority=record.priority,
        max_retries=record.max_retries,
        timeout_ms=record.timeout_ms,
        parameters=dict(record.parameters or {}),
        conditions=dict(record.conditions) if record.conditions else None,
        created_at=_utc(record.created_at),
        updated_at=_utc(record.updated_at),
        last_run=_utc(record.last_run),
        next_run=_utc(record.next_run),
        run_count=record.run_count,
        success_count=record.success_count,
        failure_count=record.failure_count,
    )


def _execution_to_record(execution: TaskExecution) -> TaskExecutionRecord:
    return TaskExecutionRecord(
        id=execution.id,
        task_id=execution.task_id,
        owner_id=execution.owner_id,
        target_id=execution.target_id,
        status=execution.status.value,
        started_at=_utc(execution.started_at),
        completed_at=_utc(execution.completed_at),
        duration_ms=execution.duration_ms,
        result=execution.result,
        error=execution.error,
        logs=list(execution.logs),
        resources_used=execution.resources_used.to_dict(),
        attempts=execution.attempts,
    )


def _execution_from_record(record: TaskExecutionRecord) -> TaskExecution:
    return TaskExecution(
        id=record.id,
        task_id=record.task_id,
        owner_id=record.owner_id,
        target_id=record.target_id,
        status=ExecutionStatus(record.status),
        started_at=_utc(record.started_at),
        completed_at=_utc(record.completed_at),
        result=record.result,
        error=record.error,
        logs=list(record.logs or []),
        resources_used=ResourceUsage.from_dict(record.resources_used),
        attempts=record.attempts,
    )


def executions_query(task_id: str, *, limit: int | None = None) -> Select:
    """Newest first; executions that never started sort last on every backend."""
    stmt = (
        select(TaskExecutionRecord)
        .where(TaskExecutionRecord.task_id == task_id)
        .order_by(TaskExecutionRecord.started_at.desc().nulls_last())
    )
    if limit is not None:
        stmt = stmt.limit(max(0, limit))
    return stmt


def _approval_values(request: ApprovalRequest) -> dict:
    return {
        "owner_id": request.owner_id,
        "target_id": request.target_id,
        "integration_id": request.integration_id,
        "task_id": request.task_id,
        "action_type": request.action_type,
        "action_description": request.action_description,
        "action_data": dict(request.action_data),
        "risk_level": request.risk_level.value,
        "risk_factors": list(request.risk_factors),
        "requested_at": _utc(request.requested_at),
        "expires_at": _utc(request.expires_at),
        "status": request.status.value,
        "estimated_impact": dict(request.estimated_impact),
        "context": dict(request.context),
        "responded_at": _utc(request.responded_at),
        "response_reason": request.response_reason,
        "modified_params": request.modified_params,
        "execution_result": request.execution_result,
        "execution_error": request.execution_error,
        "executed_at": _utc(request.executed_at),
    }


def _approval_from_record(record: ApprovalRequestRecord) -> ApprovalRequest:
    return ApprovalRequest(
        id=record.id,
        owner_id=record.owner_id,
        target_id=record.target_id,
        integration_id=record.integration_id,
        task_id=record.task_id,
        action_type=record.action_type,
        action_description=record.action_description,
        action_data=dict(record.action_data or {}),
        risk_level=RiskLevel(record.risk_level),
        risk_factors=list(record.risk_factors or []),
        requested_at=_utc(record.requested_at),
        expires_at=_utc(record.expires_at),
        status=ApprovalStatus(record.status),
        estimated_impact=dict(record.estimated_impact or {}),
        context=dict(record.context or {}),
        responded_at=_utc(record.responded_at),
        response_reason=record.response_reason,
        modified_params=record.modified_params,
        execution_result=record.execution_result,
        execution_error=record.execution_error,
        executed_at=_utc(record.executed_at),
    )


class SqlAlchemyStore:
    """Async SQLAlchemy implementation of :class:`DurableStore`.

    Every call runs in its own transaction. Driver and connection failures
    surface as :class:`StoreUnavailableError`.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    def _transaction(self) -> AbstractAsyncContextManager[AsyncSession]:
        return transaction(self._session_factory)

    # tasks

    async def save_task(self, task: ScheduledTask) -> None:
        async with self._transaction() as session:
            await session.merge(_task_to_record(task))

    async def get_task(self, task_id: str) -> ScheduledTask | None:
        async with self._transaction() as session:
            record = await session.get(ScheduledTaskRecord, task_id)
            return _task_from_record(record) if record is not None else None

    async def list_tasks(
        self,
        *,
        enabled: bool | None = None,
        owner_id: str | None = None,
    ) -> list[ScheduledTask]:
        stmt = select(ScheduledTaskRecord)
        if enabled is not None:
            stmt = stmt.where(ScheduledTaskRecord.enabled == enabled)
        if owner_id is not None:
            stmt = stmt.where(ScheduledTaskRecord.owner_id == owner_id)
        async with self._transaction() as session:
            result = await session.execute(stmt.order_by(ScheduledTaskRecord.created_at.asc()))
            return [_task_from_record(r) for r in result.scalars().all()]

    async def delete_task(self, task_id: str) -> bool:
        async with self._transaction() as session:
            await session.execute(delete(TaskExecutionRecord).where(TaskExecutionRecord.task_id == task_id))
            result = await session.execute(delete(ScheduledTaskRecord).where(ScheduledTaskRecord.id == task_id))
            return (result.rowcount or 0) > 0

    async def set_task_enabled(self, task_id: str, enabled: bool) -> bool:
        stmt = (
            update(ScheduledTaskRecord)
            .where(ScheduledTaskRecord.id == task_id)
            .values(enabled=enabled, updated_at=utcnow())
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return (result.rowcount or 0) > 0

    async def update_next_run(self, task_id: str, next_run: datetime | None) -> None:
        stmt = update(ScheduledTaskRecord).where(ScheduledTaskRecord.id == task_id).values(next_run=_utc(next_run))
        async with self._transaction() as session:
            await session.execute(stmt)

    async def update_last_run(self, task_id: str, last_run: datetime) -> None:
        stmt = update(ScheduledTaskRecord).where(ScheduledTaskRecord.id == task_id).values(last_run=_utc(last_run))
        async with self._transaction() as session:
            await session.execute(stmt)

    async def increment_task_success(self, task_id: str) -> None:
        stmt = (
            update(ScheduledTaskRecord)
            .where(ScheduledTaskRecord.id == task_id)
            .values(
                run_count=ScheduledTaskRecord.run_count + 1,
                success_count=ScheduledTaskRecord.success_count + 1,
            )
        )
        async with self._transaction() as session:
            await session.execute(stmt)

    async def increment_task_failure(self, task_id: str) -> None:
        stmt = (
            update(ScheduledTaskRecord)
            .where(ScheduledTaskRecord.id == task_id)
            .values(
                run_count=ScheduledTaskRecord.run_count + 1,
                failure_count=ScheduledTaskRecord.failure_count + 1,
            )
        )
        async with self._transaction() as session:
            await session.execute(stmt)

    # executions

    async def save_execution(self, execution: TaskExecution) -> None:
        async with self._transaction() as session:
            await session.merge(_execution_to_record(execution))

    async def list_executions(self, task_id: str, *, limit: int | None = None) -> list[TaskExecution]:
        stmt = executions_query(task_id, limit=limit)
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return [_execution_from_record(r) for r in result.scalars().all()]

    async def delete_executions_before(self, cutoff: datetime) -> int:
        stmt = delete(TaskExecutionRecord).where(
            TaskExecutionRecord.started_at < _utc(cutoff),
            TaskExecutionRecord.status.in_([s.value for s in TERMINAL_EXECUTION_STATUSES]),
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount or 0

    # approvals

    async def save_approval(
        self,
        request: ApprovalRequest,
        *,
        expected_status: ApprovalStatus | None = None,
    ) -> bool:
        values = _approval_values(request)
        async with self._transaction() as session:
            if expected_status is None:
                await session.merge(ApprovalRequestRecord(id=request.id, **values))
                return True
            stmt = (
                update(ApprovalRequestRecord)
                .where(
                    ApprovalRequestRecord.id == request.id,
                    ApprovalRequestRecord.status == ApprovalStatus(expected_status).value,
                )
                .values(**values)
            )
            result = await session.execute(stmt)
            return (result.rowcount or 0) == 1

    async def get_approval(self, request_id: str) -> ApprovalRequest | None:
        async with self._transaction() as session:
            record = await session.get(ApprovalRequestRecord, request_id)
            return _approval_from_record(record) if record is not None else None

    async def list_approvals(
        self,
        *,
        owner_id: str | None = None,
        status: ApprovalStatus | None = None,
        task_id: str | None = None,
        action_type: str | None = None,
    ) -> list[ApprovalRequest]:
        stmt = select(ApprovalRequestRecord)
        if owner_id is not None:
            stmt = stmt.where(ApprovalRequestRecord.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(ApprovalRequestRecord.status == ApprovalStatus(status).value)
        if task_id is not None:
            stmt = stmt.where(ApprovalRequestRecord.task_id == task_id)
        if action_type is not None:
            stmt = stmt.where(ApprovalRequestRecord.action_type == action_type)
        async with self._transaction() as session:
            result = await session.execute(stmt.order_by(ApprovalRequestRecord.requested_at.desc()))
            return [_approval_from_record(r) for r in result.scalars().all()]

    async def expire_pending_approvals(self, now: datetime) -> int:
        stmt = (
            update(ApprovalRequestRecord)
            .where(
                ApprovalRequestRecord.status == ApprovalStatus.PENDING.value,
                ApprovalRequestRecord.expires_at <= _utc(now),
            )
            .values(status=ApprovalStatus.EXPIRED.value)
        )
        async with self._transaction() as session:
            result = await session.execute(stmt)
            return result.rowcount or 0
