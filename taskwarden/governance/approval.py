"""Approval gate for high-risk actions.

Requests are resolved exactly once. Every status change goes through the
store's compare-and-set so two concurrent responses cannot both win, and a
pending request whose window has closed becomes ``expired`` instead of being
approved.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from taskwarden.capabilities import CapabilityContext, CapabilityExecutor
from taskwarden.config.models import ApprovalConfig
from taskwarden.errors import (
    ApprovalExpiredError,
    ApprovalNotFoundError,
    InvalidStateError,
    StoreUnavailableError,
)
from taskwarden.governance.risk_assessor import RiskAssessment, RiskAssessor, RiskLevel
from taskwarden.scheduling.models import utcnow

if TYPE_CHECKING:
    from taskwarden.store.base import DurableStore

logger = logging.getLogger(__name__)

CANCELLED_REASON = "cancelled"


class ApprovalStatus(str, Enum):
    """Approval request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


TERMINAL_APPROVAL_STATUSES = frozenset(
    {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED, ApprovalStatus.EXPIRED}
)


@dataclass
class ApprovalRequest:
    """One pending-or-resolved request for a human decision on an action."""

    owner_id: str
    target_id: str
    action_type: str
    action_data: dict[str, Any]
    risk_level: RiskLevel
    requested_at: datetime
    expires_at: datetime
    id: str = field(default_factory=lambda: f"approval_{uuid.uuid4().hex}")
    integration_id: str = "store"
    task_id: str | None = None
    action_description: str = ""
    risk_factors: list[str] = field(default_factory=list)
    status: ApprovalStatus = ApprovalStatus.PENDING
    estimated_impact: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    responded_at: datetime | None = None
    response_reason: str | None = None
    modified_params: dict[str, Any] | None = None
    execution_result: dict[str, Any] | None = None
    execution_error: str | None = None
    executed_at: datetime | None = None

    def __post_init__(self) -> None:
        self.status = ApprovalStatus(self.status)
        self.risk_level = RiskLevel(self.risk_level)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPROVAL_STATUSES

    @property
    def is_cancelled(self) -> bool:
        return self.status == ApprovalStatus.REJECTED and self.response_reason == CANCELLED_REASON

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass(frozen=True)
class ApprovalStats:
    """Per-owner approval counts over a window."""

    total: int
    pending: int
    approved: int
    rejected: int
    expired: int
    average_response_hours: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "approved": self.approved,
            "rejected": self.rejected,
            "expired": self.expired,
            "average_response_hours": self.average_response_hours,
        }


class ApprovalGate:
    """Create, resolve and expire approval requests for gated actions."""

    def __init__(
        self,
        store: DurableStore,
        executor: CapabilityExecutor,
        *,
        settings: ApprovalConfig | None = None,
        assessor: RiskAssessor | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._executor = executor
        self._settings = settings or ApprovalConfig()
        self._assessor = assessor or RiskAssessor()
        self._clock = clock

    @property
    def settings(self) -> ApprovalConfig:
        return self._settings

    def apply_settings(self, settings: ApprovalConfig) -> None:
        """Swap in reloaded settings; affects requests created afterwards."""
        self._settings = settings
        logger.info(
            "Approval settings updated gated=%s ttl=%s",
            settings.gated_risk_levels,
            settings.ttl_seconds_by_risk,
        )

    def assess(self, action_type: str, action_data: dict[str, Any] | None = None) -> RiskAssessment:
        return self._assessor.assess(action_type, action_data)

    def requires_approval(self, assessment: RiskAssessment) -> bool:
        return assessment.level.value in self._settings.gated_risk_levels

    def ttl_for(self, level: RiskLevel) -> timedelta:
        return timedelta(seconds=self._settings.ttl_seconds_by_risk[RiskLevel(level).value])

    async def create_request(
        self,
        *,
        owner_id: str,
        target_id: str,
        action_type: str,
        action_data: dict[str, Any],
        integration_id: str = "store",
        task_id: str | None = None,
        context: dict[str, Any] | None = None,
        assessment: RiskAssessment | None = None,
        ttl: timedelta | None = None,
    ) -> ApprovalRequest:
        """Persist a new pending request and return it."""
        if ttl is not None and ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        assessment = assessment or self.assess(action_type, action_data)
        now = self._clock()
        impact = self._assessor.estimate_impact(action_type, action_data)
        request = ApprovalRequest(
            owner_id=owner_id,
            target_id=target_id,
            integration_id=integration_id,
            task_id=task_id,
            action_type=action_type,
            action_description=self._assessor.describe(action_type, action_data),
            action_data=dict(action_data),
            risk_level=assessment.level,
            risk_factors=list(assessment.factors),
            requested_at=now,
            expires_at=now + (ttl or self.ttl_for(assessment.level)),
            estimated_impact=impact.to_dict(),
            context=dict(context or {}),
        )
        await self._store.save_approval(request)
        logger.info(
            "Approval requested id=%s owner=%s action=%s risk=%s expires_at=%s",
            request.id,
            owner_id,
            action_type,
            request.risk_level.value,
            request.expires_at.isoformat(),
        )
        return request

    async def intercept(
        self,
        *,
        owner_id: str,
        target_id: str,
        action_type: str,
        action_data: dict[str, Any],
        task_id: str | None = None,
        integration_id: str = "store",
        context: dict[str, Any] | None = None,
    ) -> ApprovalRequest | None:
        """Return the approval request an action must wait on, or None to proceed.

        A still-pending request for the same task and action type is reused.
        """
        assessment = self.assess(action_type, action_data)
        if not self.requires_approval(assessment):
            return None
        if task_id is not None:
            existing = await self.find_pending(owner_id=owner_id, task_id=task_id, action_type=action_type)
            if existing is not None:
                logger.info("Reusing pending approval id=%s for task=%s", existing.id, task_id)
                return existing
        return await self.create_request(
            owner_id=owner_id,
            target_id=target_id,
            action_type=action_type,
            action_data=action_data,
            integration_id=integration_id,
            task_id=task_id,
            context=context,
            assessment=assessment,
        )

    async def find_pending(self, *, owner_id: str, task_id: str, action_type: str) -> ApprovalRequest | None:
        now = self._clock()
        rows = await self._store.list_approvals(
            owner_id=owner_id,
            status=ApprovalStatus.PENDING,
            task_id=task_id,
            action_type=action_type,
        )
        for row in rows:
            if row.is_expired(now):
                await self._mark_expired(row, now)
                continue
            return row
        return None

    async def get(self, request_id: str, *, owner_id: str | None = None) -> ApprovalRequest:
        request = await self._require(request_id, owner_id)
        now = self._clock()
        if request.status == ApprovalStatus.PENDING and request.is_expired(now):
            await self._mark_expired(request, now)
            request = await self._require(request_id, owner_id)
        return request

    async def respond(
        self,
        request_id: str,
        approved: bool,
        reason: str | None = None,
        modified_params: dict[str, Any] | None = None,
        *,
        owner_id: str | None = None,
    ) -> ApprovalRequest:
        """Resolve a pending request.

        Approval runs the gated action right away with *modified_params* (or
        the original data) and attaches the outcome to the request.

        Raises:
            ApprovalNotFoundError: Unknown id or owned by someone else.
            ApprovalExpiredError: The window closed; the request is now expired.
            InvalidStateError: The request was already resolved.
        """
        request = await self._require(request_id, owner_id)
        now = self._clock()
        self._check_respondable(request)
        if request.is_expired(now):
            if not await self._mark_expired(request, now):
                self._check_respondable(await self._require(request_id, owner_id))
            raise ApprovalExpiredError(request_id)

        request.status = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
        request.responded_at = now
        request.response_reason = reason
        request.modified_params = dict(modified_params) if modified_params is not None else None
        if not await self._store.save_approval(request, expected_status=ApprovalStatus.PENDING):
            current = await self._require(request_id, owner_id)
            self._check_respondable(current)
            raise InvalidStateError(
                f"Approval request '{request_id}' changed concurrently",
                current=current.status.value,
            )
        logger.info(
            "Approval %s id=%s action=%s reason=%s",
            request.status.value,
            request.id,
            request.action_type,
            reason,
        )
        if approved:
            await self._execute_approved(request)
        return request

    async def cancel(self, request_id: str, *, owner_id: str | None = None) -> ApprovalRequest:
        """Withdraw a pending request.

        Cancelling an already cancelled, rejected or expired request returns it
        unchanged.

        Raises:
            ApprovalNotFoundError: Unknown id or owned by someone else.
            InvalidStateError: The request was already approved.
        """
        request = await self._require(request_id, owner_id)
        now = self._clock()
        if request.status == ApprovalStatus.PENDING and request.is_expired(now):
            await self._mark_expired(request, now)
            return await self._require(request_id, owner_id)
        if request.status == ApprovalStatus.APPROVED:
            raise InvalidStateError(
                f"Approval request '{request_id}' is already approved",
                current=request.status.value,
            )
        if request.status != ApprovalStatus.PENDING:
            return request
        request.status = ApprovalStatus.REJECTED
        request.responded_at = now
        request.response_reason = CANCELLED_REASON
        if not await self._store.save_approval(request, expected_status=ApprovalStatus.PENDING):
            return await self.cancel(request_id, owner_id=owner_id)
        logger.info("Approval cancelled id=%s", request_id)
        return request

    async def expire_pending(self, now: datetime | None = None) -> int:
        """Expire every pending request whose window has closed."""
        count = await self._store.expire_pending_approvals(now or self._clock())
        if count:
            logger.info("Expired %d approval request(s)", count)
        return count

    async def list_requests(
        self,
        owner_id: str,
        status: ApprovalStatus | str | None = None,
    ) -> list[ApprovalRequest]:
        await self.expire_pending()
        wanted = ApprovalStatus(status) if status is not None else None
        return await self._store.list_approvals(owner_id=owner_id, status=wanted)

    async def stats(self, owner_id: str, window_days: int | None = None) -> ApprovalStats:
        """Counts by status and mean response time over the last *window_days*."""
        await self.expire_pending()
        days = window_days if window_days is not None else self._settings.stats_window_days
        since = self._clock() - timedelta(days=days)
        rows = [r for r in await self._store.list_approvals(owner_id=owner_id) if r.requested_at >= since]
        counts = {status: 0 for status in ApprovalStatus}
        response_hours: list[float] = []
        for row in rows:
            counts[row.status] += 1
            if row.responded_at is not None and not row.is_cancelled:
                response_hours.append((row.responded_at - row.requested_at).total_seconds() / 3600.0)
        average = sum(response_hours) / len(response_hours) if response_hours else 0.0
        return ApprovalStats(
            total=len(rows),
            pending=counts[ApprovalStatus.PENDING],
            approved=counts[ApprovalStatus.APPROVED],
            rejected=counts[ApprovalStatus.REJECTED],
            expired=counts[ApprovalStatus.EXPIRED],
            average_response_hours=round(average, 2),
        )

    async def _require(self, request_id: str, owner_id: str | None) -> ApprovalRequest:
        request = await self._store.get_approval(request_id)
        if request is None or (owner_id is not None and request.owner_id != owner_id):
            raise ApprovalNotFoundError(request_id)
        return request

    @staticmethod
    def _check_respondable(request: ApprovalRequest) -> None:
        if request.status == ApprovalStatus.EXPIRED:
            raise ApprovalExpiredError(request.id)
        if request.status != ApprovalStatus.PENDING:
            raise InvalidStateError(
                f"Approval request '{request.id}' is not pending: {request.status.value}",
                current=request.status.value,
            )

    async def _mark_expired(self, request: ApprovalRequest, now: datetime) -> bool:
        request.status = ApprovalStatus.EXPIRED
        request.responded_at = None
        saved = await self._store.save_approval(request, expected_status=ApprovalStatus.PENDING)
        if saved:
            logger.info("Approval expired id=%s (expires_at=%s, now=%s)", request.id, request.expires_at, now)
        return saved

    async def _execute_approved(self, request: ApprovalRequest) -> None:
        params = request.modified_params if request.modified_params is not None else request.action_data
        context = CapabilityContext(
            owner_id=request.owner_id,
            target_id=request.target_id,
            integration_id=request.integration_id,
            task_id=request.task_id,
            approval_request_id=request.id,
        )
        try:
            result = await self._executor.execute(request.action_type, dict(params), context)
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.exception("Approved action failed id=%s action=%s", request.id, request.action_type)
            request.execution_error = str(exc) or type(exc).__name__
        else:
            request.execution_result = dict(result.data)
        request.executed_at = self._clock()
        await self._store.save_approval(request)
