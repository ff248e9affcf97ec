"""Data model for recurring tasks and their executions."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from taskwarden.errors import InvalidStateError, TaskValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskType(str, Enum):
    """Closed set of automation task types."""

    INVENTORY_CHECK = "inventory_check"
    PRICE_OPTIMIZATION = "price_optimization"
    ORDER_FULFILLMENT = "order_fulfillment"
    MARKETING_AUTOMATION = "marketing_automation"
    DATA_SYNC = "data_sync"
    CUSTOM = "custom"


class Frequency(str, Enum):
    """How often a task recurs."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class TaskPriority(str, Enum):
    """Task priority; higher ranks load and dequeue first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    TaskPriority.LOW: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.HIGH: 2,
    TaskPriority.CRITICAL: 3,
}


class ExecutionStatus(str, Enum):
    """Lifecycle of a single task execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_EXECUTION_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)

_EXECUTION_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset({ExecutionStatus.RUNNING, ExecutionStatus.CANCELLED}),
    ExecutionStatus.RUNNING: TERMINAL_EXECUTION_STATUSES,
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
    ExecutionStatus.CANCELLED: frozenset(),
}


# ---------------------------------------------------------------------------
# Typed parameters, one variant per task type
# ---------------------------------------------------------------------------


class _Params(BaseModel):
    model_config = ConfigDict(extra="forbid")


class InventoryCheckParams(_Params):
    """Flag products whose stock falls below a threshold."""

    low_stock_threshold: int = Field(default=10, ge=0)
    location_ids: list[str] = Field(default_factory=list)
    notify: bool = True


class PriceOptimizationParams(_Params):
    """Suggest price changes within a bounded band."""

    strategy: Literal["competitive", "margin", "demand"] = "competitive"
    max_price_change_percent: float = Field(default=10.0, gt=0.0, le=100.0)
    min_margin_percent: float = Field(default=0.0, ge=0.0, lt=100.0)
    product_ids: list[str] = Field(default_factory=list)


class OrderFulfillmentParams(_Params):
    """Sweep unfulfilled orders older than a cutoff."""

    max_order_age_hours: int = Field(default=24, ge=1)
    auto_fulfill: bool = False
    notify_customer: bool = True


class MarketingAutomationParams(_Params):
    """Launch or refresh a marketing campaign."""

    campaign_name: str = Field(default="Automated campaign", min_length=1)
    budget: float = Field(default=0.0, ge=0.0)
    channels: list[str] = Field(default_factory=lambda: ["email"], min_length=1)
    audience: str = "all"


class DataSyncParams(_Params):
    """Synchronise records between connected integrations."""

    sources: list[str] = Field(default_factory=lambda: ["store"], min_length=1)
    direction: Literal["pull", "push", "bidirectional"] = "pull"
    full_resync: bool = False


class CustomTaskParams(_Params):
    """User-defined action forwarded to the capability executor as-is."""

    action_type: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("action_type")
    @classmethod
    def _strip(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("action_type must not be blank")
        return stripped


TaskParameters = (
    InventoryCheckParams
    | PriceOptimizationParams
    | OrderFulfillmentParams
    | MarketingAutomationParams
    | DataSyncParams
    | CustomTaskParams
)

PARAMETER_MODELS: dict[TaskType, type[_Params]] = {
    TaskType.INVENTORY_CHECK: InventoryCheckParams,
    TaskType.PRICE_OPTIMIZATION: PriceOptimizationParams,
    TaskType.ORDER_FULFILLMENT: OrderFulfillmentParams,
    TaskType.MARKETING_AUTOMATION: MarketingAutomationParams,
    TaskType.DATA_SYNC: DataSyncParams,
    TaskType.CUSTOM: CustomTaskParams,
}


def parse_parameters(task_type: TaskType, raw: dict[str, Any] | None) -> TaskParameters:
    """Validate a raw parameter bag against the model for *task_type*."""
    model = PARAMETER_MODELS[task_type]
    try:
        return model.model_validate(raw or {})  # type: ignore[return-value]
    except ValidationError as exc:
        raise TaskValidationError(
            f"Invalid parameters for {task_type.value}: {exc.errors(include_url=False)}"
        ) from exc


class TaskConditions(_Params):
    """Optional preconditions evaluated right before each run."""

    min_interval_minutes: int | None = Field(default=None, ge=1)
    active_hours: tuple[int, int] | None = None
    weekdays: list[int] | None = None

    @field_validator("active_hours")
    @classmethod
    def _check_hours(cls, value: tuple[int, int] | None) -> tuple[int, int] | None:
        if value is None:
            return value
        start, end = value
        if not (0 <= start <= 23 and 1 <= end <= 24) or start >= end:
            raise ValueError("active_hours must be (start, end) with 0 <= start < end <= 24")
        return value

    @field_validator("weekdays")
    @classmethod
    def _check_weekdays(cls, value: list[int] | None) -> list[int] | None:
        if value is None:
            return value
        if not value or any(day < 1 or day > 7 for day in value):
            raise ValueError("weekdays must be ISO weekday numbers 1-7")
        return sorted(set(value))

    def unmet_reason(self, *, now: datetime, last_run: datetime | None, tz: ZoneInfo) -> str | None:
        """Return why the task should not run now, or None when it may."""
        local = now.astimezone(tz)
        if self.weekdays is not None and local.isoweekday() not in self.weekdays:
            return f"weekday {local.isoweekday()} not in {self.weekdays}"
        if self.active_hours is not None:
            start, end = self.active_hours
            if not start <= local.hour < end:
                return f"hour {local.hour} outside active hours {start}-{end}"
        if self.min_interval_minutes is not None and last_run is not None:
            elapsed = (now - last_run).total_seconds() / 60.0
            if elapsed < self.min_interval_minutes:
                return f"last run {elapsed:.1f} minutes ago (< {self.min_interval_minutes})"
        return None


def parse_conditions(raw: dict[str, Any] | None) -> TaskConditions | None:
    if not raw:
        return None
    try:
        return TaskConditions.model_validate(raw)
    except ValidationError as exc:
        raise TaskValidationError(f"Invalid conditions: {exc.errors(include_url=False)}") from exc


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def _coerce_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)  # type: ignore[attr-defined]
        raise TaskValidationError(f"{field_name} must be one of: {allowed}") from None


def _require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise TaskValidationError(f"{field_name} must be a non-empty string")
    return value.strip()


def load_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise TaskValidationError(f"Unknown timezone: '{name}'") from None


@dataclass(frozen=True)
class Schedule:
    """When a task recurs.

    A ``custom`` frequency requires a cron expression; other frequencies
    ignore it.
    """

    frequency: Frequency
    cron_expression: str | None = None
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        frequency = _coerce_enum(Frequency, self.frequency, "frequency")
        object.__setattr__(self, "frequency", frequency)
        cron = self.cron_expression.strip() if isinstance(self.cron_expression, str) else None
        object.__setattr__(self, "cron_expression", cron or None)
        if frequency == Frequency.CUSTOM and not cron:
            raise TaskValidationError("cron_expression is required when frequency is 'custom'")
        tz_name = (self.timezone or "UTC").strip() or "UTC"
        load_timezone(tz_name)
        object.__setattr__(self, "timezone", tz_name)

    @property
    def tzinfo(self) -> ZoneInfo:
        return load_timezone(self.timezone)


@dataclass
class ScheduledTask:
    """A recurring job definition owned by one user."""

    owner_id: str
    target_id: str
    task_type: TaskType
    schedule: Schedule
    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    description: str = ""
    enabled: bool = True
    priority: TaskPriority = TaskPriority.MEDIUM
    max_retries: int = 3
    timeout_ms: int = 300_000
    parameters: dict[str, Any] = field(default_factory=dict)
    conditions: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_run: datetime | None = None
    next_run: datetime | None = None
    run_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    typed_parameters: TaskParameters = field(init=False, repr=False, compare=False)
    typed_conditions: TaskConditions | None = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.id = _require_text(self.id, "id")
        self.owner_id = _require_text(self.owner_id, "owner_id")
        self.target_id = _require_text(self.target_id, "target_id")
        self.name = _require_text(self.name, "name")
        self.task_type = _coerce_enum(TaskType, self.task_type, "task_type")
        self.priority = _coerce_enum(TaskPriority, self.priority, "priority")
        if not isinstance(self.schedule, Schedule):
            raise TaskValidationError("schedule must be a Schedule")
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise TaskValidationError("max_retries must be a non-negative integer")
        if isinstance(self.timeout_ms, bool) or not isinstance(self.timeout_ms, int) or self.timeout_ms <= 0:
            raise TaskValidationError("timeout_ms must be a positive integer")
        self.typed_parameters = parse_parameters(self.task_type, self.parameters)
        self.parameters = self.typed_parameters.model_dump(mode="json")
        self.typed_conditions = parse_conditions(self.conditions)
        self.conditions = (
            self.typed_conditions.model_dump(mode="json", exclude_none=True)
            if self.typed_conditions is not None
            else None
        )


@dataclass
class ResourceUsage:
    """External calls, estimated cost and processing time of one execution."""

    calls: int = 0
    cost: float = 0.0
    processing_time_ms: int = 0

    def add(self, *, calls: int = 0, cost: float = 0.0, processing_time_ms: int = 0) -> None:
        self.calls += max(0, int(calls))
        self.cost = round(self.cost + max(0.0, float(cost)), 6)
        self.processing_time_ms += max(0, int(processing_time_ms))

    def to_dict(self) -> dict[str, Any]:
        return {
            "calls": self.calls,
            "cost": self.cost,
            "processing_time_ms": self.processing_time_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ResourceUsage:
        data = data or {}
        return cls(
            calls=int(data.get("calls", 0) or 0),
            cost=float(data.get("cost", 0.0) or 0.0),
            processing_time_ms=int(data.get("processing_time_ms", 0) or 0),
        )


@dataclass
class TaskExecution:
    """One concrete run of a ScheduledTask."""

    task_id: str
    owner_id: str
    target_id: str
    id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex}")
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    logs: list[str] = field(default_factory=list)
    resources_used: ResourceUsage = field(default_factory=ResourceUsage)
    attempts: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_EXECUTION_STATUSES

    @property
    def duration_ms(self) -> int | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return max(0, int((self.completed_at - self.started_at).total_seconds() * 1000))

    def transition(self, status: ExecutionStatus, *, at: datetime | None = None) -> None:
        """Move to *status*, stamping start/completion times.

        Raises:
            InvalidStateError: If the transition is not allowed.
        """
        status = ExecutionStatus(status)
        if status not in _EXECUTION_TRANSITIONS[self.status]:
            raise InvalidStateError(
                f"Execution {self.id} cannot move from {self.status.value} to {status.value}",
                current=self.status.value,
            )
        moment = at or utcnow()
        if status == ExecutionStatus.RUNNING:
            self.started_at = moment
        elif status in TERMINAL_EXECUTION_STATUSES:
            if self.started_at is None:
                self.started_at = moment
            self.completed_at = moment
        self.status = status
