"""Recurring task model, next-run calculation, scheduler, runner and ad-hoc queue."""

from taskwarden.scheduling.models import (
    CustomTaskParams,
    DataSyncParams,
    ExecutionStatus,
    Frequency,
    InventoryCheckParams,
    MarketingAutomationParams,
    OrderFulfillmentParams,
    PriceOptimizationParams,
    ResourceUsage,
    Schedule,
    ScheduledTask,
    TaskConditions,
    TaskExecution,
    TaskPriority,
    TaskType,
)
from taskwarden.scheduling.queue import AdHocTaskQueue
from taskwarden.scheduling.routines import PlannedAction, plan_actions
from taskwarden.scheduling.runner import ExecutionLogger, ExecutorRunner, RetryStrategy
from taskwarden.scheduling.schedule import calculate_next_run, validate_cron_expression
from taskwarden.scheduling.scheduler import Scheduler

__all__ = [
    "AdHocTaskQueue",
    "CustomTaskParams",
    "DataSyncParams",
    "ExecutionLogger",
    "ExecutionStatus",
    "ExecutorRunner",
    "Frequency",
    "InventoryCheckParams",
    "MarketingAutomationParams",
    "OrderFulfillmentParams",
    "PlannedAction",
    "PriceOptimizationParams",
    "ResourceUsage",
    "RetryStrategy",
    "Schedule",
    "ScheduledTask",
    "Scheduler",
    "TaskConditions",
    "TaskExecution",
    "TaskPriority",
    "TaskType",
    "calculate_next_run",
    "plan_actions",
    "validate_cron_expression",
]
