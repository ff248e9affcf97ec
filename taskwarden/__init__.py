"""taskwarden: recurring store automation with a human approval gate."""

from taskwarden.app import TaskStatus, TaskWarden
from taskwarden.capabilities import (
    CapabilityContext,
    CapabilityExecutor,
    CapabilityRegistry,
    CapabilityResult,
)
from taskwarden.errors import (
    ApprovalExpiredError,
    ApprovalNotFoundError,
    CapabilityError,
    InvalidStateError,
    PermissionDeniedError,
    StoreUnavailableError,
    TaskExecutionError,
    TaskNotFoundError,
    TaskTimeoutError,
    TaskValidationError,
    TaskwardenError,
)
from taskwarden.governance import (
    ApprovalGate,
    ApprovalRequest,
    ApprovalStatus,
    RiskAssessor,
    RiskLevel,
    StaticPermissionOracle,
    TierPermissionOracle,
)
from taskwarden.scheduling import (
    ExecutionStatus,
    ExecutorRunner,
    Frequency,
    Schedule,
    ScheduledTask,
    Scheduler,
    TaskExecution,
    TaskPriority,
    TaskType,
    calculate_next_run,
)
from taskwarden.store import InMemoryStore, SqlAlchemyStore

__version__ = "0.1.0"

__all__ = [
    "ApprovalExpiredError",
    "ApprovalGate",
    "ApprovalNotFoundError",
    "ApprovalRequest",
    "ApprovalStatus",
    "CapabilityContext",
    "CapabilityError",
    "CapabilityExecutor",
    "CapabilityRegistry",
    "CapabilityResult",
    "ExecutionStatus",
    "ExecutorRunner",
    "Frequency",
    "InMemoryStore",
    "InvalidStateError",
    "PermissionDeniedError",
    "RiskAssessor",
    "RiskLevel",
    "Schedule",
    "ScheduledTask",
    "Scheduler",
    "SqlAlchemyStore",
    "StaticPermissionOracle",
    "StoreUnavailableError",
    "TaskExecution",
    "TaskExecutionError",
    "TaskNotFoundError",
    "TaskPriority",
    "TaskStatus",
    "TaskTimeoutError",
    "TaskType",
    "TaskValidationError",
    "TaskWarden",
    "TaskwardenError",
    "TierPermissionOracle",
    "calculate_next_run",
    "__version__",
]
