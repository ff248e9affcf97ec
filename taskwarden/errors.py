"""Error taxonomy for taskwarden.

Permission denials are soft skips and never escape the scheduler; execution
errors are recorded on the execution; everything else is a caller error or a
store outage surfaced immediately.
"""

from __future__ import annotations


class TaskwardenError(Exception):
    """Base exception for all taskwarden errors."""


class TaskValidationError(TaskwardenError, ValueError):
    """Raised when a task definition or its parameters are malformed."""


class InvalidStateError(TaskwardenError):
    """Raised on an illegal lifecycle transition."""

    def __init__(self, message: str, *, current: str | None = None) -> None:
        self.current = current
        super().__init__(message)


class PermissionDeniedError(TaskwardenError):
    """Raised when the owner's plan does not allow a task type."""

    def __init__(self, owner_id: str, task_type: str) -> None:
        self.owner_id = owner_id
        self.task_type = task_type
        super().__init__(f"Owner '{owner_id}' is not permitted to run '{task_type}' tasks")


class TaskNotFoundError(TaskwardenError, KeyError):
    """Raised when a scheduled task id is unknown."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Scheduled task '{task_id}' not found")

    def __str__(self) -> str:
        return str(self.args[0])


class ApprovalNotFoundError(TaskwardenError, KeyError):
    """Raised when an approval request id is unknown or owned by someone else."""

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Approval request '{request_id}' not found")

    def __str__(self) -> str:
        return str(self.args[0])


class ApprovalExpiredError(TaskwardenError):
    """Raised when a response arrives after the approval window closed."""

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Approval request '{request_id}' has expired")


class TaskExecutionError(TaskwardenError):
    """Raised when a task's domain routine fails."""


class TaskTimeoutError(TaskExecutionError):
    """Raised when one execution attempt exceeds the task timeout."""

    def __init__(self, task_id: str, timeout_ms: int) -> None:
        self.task_id = task_id
        self.timeout_ms = timeout_ms
        super().__init__(f"Task '{task_id}' timed out after {timeout_ms}ms")


class CapabilityError(TaskwardenError):
    """Raised by a capability executor when the external action fails.

    ``retryable`` tells the runner whether another attempt within the same
    run may succeed (rate limits, transient network errors).
    """

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)


class StoreUnavailableError(TaskwardenError):
    """Raised when the durable store cannot be read or written."""
