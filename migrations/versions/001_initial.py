"""Create scheduled_tasks, task_executions and approval_requests.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "scheduled_tasks",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("target_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("task_type", sa.String(50), nullable=False),
        sa.Column("frequency", sa.String(20), nullable=False),
        sa.Column("cron_expression", sa.String(255), nullable=True),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("timeout_ms", sa.Integer(), nullable=False, server_default="300000"),
        sa.Column("parameters", JSONType, nullable=False),
        sa.Column("conditions", JSONType, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_run", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run", sa.DateTime(timezone=True), nullable=True),
        sa.Column("run_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        comment="Recurring automation tasks",
    )
    op.create_index(op.f("ix_scheduled_tasks_owner_id"), "scheduled_tasks", ["owner_id"])
    op.create_index("idx_scheduled_tasks_owner_enabled", "scheduled_tasks", ["owner_id", "enabled"])
    op.create_index("idx_scheduled_tasks_next_run", "scheduled_tasks", ["next_run"])

    op.create_table(
        "task_executions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "task_id",
            sa.String(64),
            sa.ForeignKey(
                "scheduled_tasks.id",
                name="fk_task_executions_task_id_scheduled_tasks",
                ondelete="CASCADE",
            ),
            nullable=False,
        ),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("target_id", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("result", JSONType, nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("logs", JSONType, nullable=False),
        sa.Column("resources_used", JSONType, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        comment="Individual runs of scheduled tasks; swept after the retention window",
    )
    op.create_index(op.f("ix_task_executions_owner_id"), "task_executions", ["owner_id"])
    op.create_index("idx_task_executions_task_started", "task_executions", ["task_id", "started_at"])
    op.create_index("idx_task_executions_status", "task_executions", ["status"])

    op.create_table(
        "approval_requests",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("target_id", sa.String(255), nullable=False),
        sa.Column("integration_id", sa.String(255), nullable=False, server_default="store"),
        sa.Column("task_id", sa.String(64), nullable=True),
        sa.Column("action_type", sa.String(100), nullable=False),
        sa.Column("action_description", sa.Text(), nullable=False, server_default=""),
        sa.Column("action_data", JSONType, nullable=False),
        sa.Column("risk_level", sa.String(20), nullable=False),
        sa.Column("risk_factors", JSONType, nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("estimated_impact", JSONType, nullable=False),
        sa.Column("context", JSONType, nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_reason", sa.Text(), nullable=True),
        sa.Column("modified_params", JSONType, nullable=True),
        sa.Column("execution_result", JSONType, nullable=True),
        sa.Column("execution_error", sa.Text(), nullable=True),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        comment="Human approval requests for high-risk actions",
    )
    op.create_index(op.f("ix_approval_requests_owner_id"), "approval_requests", ["owner_id"])
    op.create_index("idx_approval_requests_owner_status", "approval_requests", ["owner_id", "status"])
    op.create_index(
        "idx_approval_requests_task_action_status",
        "approval_requests",
        ["task_id", "action_type", "status"],
    )
    op.create_index("idx_approval_requests_expires_at", "approval_requests", ["expires_at"])


def downgrade() -> None:
    op.drop_index("idx_approval_requests_expires_at", table_name="approval_requests")
    op.drop_index("idx_approval_requests_task_action_status", table_name="approval_requests")
    op.drop_index("idx_approval_requests_owner_status", table_name="approval_requests")
    op.drop_index(op.f("ix_approval_requests_owner_id"), table_name="approval_requests")
    op.drop_table("approval_requests")

    op.drop_index("idx_task_executions_status", table_name="task_executions")
    op.drop_index("idx_task_executions_task_started", table_name="task_executions")
    op.drop_index(op.f("ix_task_executions_owner_id"), table_name="task_executions")
    op.drop_table("task_executions")

    op.drop_index("idx_scheduled_tasks_next_run", table_name="scheduled_tasks")
    op.drop_index("idx_scheduled_tasks_owner_enabled", table_name="scheduled_tasks")
    op.drop_index(op.f("ix_scheduled_tasks_owner_id"), table_name="scheduled_tasks")
    op.drop_table("scheduled_tasks")
