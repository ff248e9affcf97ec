"""ORM models for the durable store."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from taskwarden.db import Base

# JSONB on PostgreSQL, plain JSON elsewhere (sqlite for Lite mode and tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class ScheduledTaskRecord(Base):
    """Recurring task definition and its run counters."""

    __tablename__ = "scheduled_tasks"
    __table_args__ = (
        Index("idx_scheduled_tasks_owner_enabled", "owner_id", "enabled"),
        Index("idx_scheduled_tasks_next_run", "next_run"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    task_type: Mapped[str] = mapped_column(String(50), nullable=False)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    cron_expression: Mapped[str | None] = mapped_column(String(255), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    timeout_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=300_000)
    parameters: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    conditions: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    run_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class TaskExecutionRecord(Base):
    """One run of a scheduled task."""

    __tablename__ = "task_executions"
    __table_args__ = (
        Index("idx_task_executions_task_started", "task_id", "started_at"),
        Index("idx_task_executions_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    task_id: Mapped[str] = mapped_column(
        ForeignKey("scheduled_tasks.id", ondelete="CASCADE"),
        nullable=False,
    )
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    logs: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    resources_used: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ApprovalRequestRecord(Base):
    """Human approval request for a gated action, with its resolution."""

    __tablename__ = "approval_requests"
    __table_args__ = (
        Index("idx_approval_requests_owner_status", "owner_id", "status"),
        Index("idx_approval_requests_task_action_status", "task_id", "action_type", "status"),
        Index("idx_approval_requests_expires_at", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    integration_id: Mapped[str] = mapped_column(String(255), nullable=False, default="store")
    task_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    action_type: Mapped[str] = mapped_column(String(100), nullable=False)
    action_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    action_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    risk_level: Mapped[str] = mapped_column(String(20), nullable=False)
    risk_factors: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    estimated_impact: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    context: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    response_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    modified_params: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    execution_result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    execution_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
