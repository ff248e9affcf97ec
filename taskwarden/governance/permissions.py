"""Permission oracles: may this owner run this task type automatically?"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from taskwarden.config.models import PermissionsConfig
from taskwarden.scheduling.models import TaskType

logger = logging.getLogger(__name__)


class PermissionOracle(Protocol):
    """Answers whether an owner's plan permits automated runs of a task type."""

    async def can_run(self, owner_id: str, task_type: TaskType) -> bool: ...


@dataclass(frozen=True)
class AccountStanding:
    """Subscription tier and status for one owner."""

    tier: str
    status: str = "active"


AccountLookup = Callable[[str], Awaitable[AccountStanding | None]]


class TierPermissionOracle:
    """Grant automation to active subscriptions whose tier has an automation feature.

    The ``custom`` task type additionally needs the ``custom_workflows``
    feature. Unknown owners, inactive subscriptions and lookup failures are
    denials.
    """

    CUSTOM_FEATURE = "custom_workflows"

    def __init__(self, lookup: AccountLookup, settings: PermissionsConfig | None = None) -> None:
        self._lookup = lookup
        self._settings = settings or PermissionsConfig()

    async def can_run(self, owner_id: str, task_type: TaskType) -> bool:
        try:
            standing = await self._lookup(owner_id)
        except Exception as exc:
            logger.warning("Account lookup failed for owner=%s: %s", owner_id, exc)
            return False
        if standing is None:
            return False
        if standing.status.strip().lower() != "active":
            return False
        tier = self._settings.tiers.get(standing.tier.strip().lower())
        if tier is None:
            return False
        features = set(tier.features)
        if not features.intersection(self._settings.automation_features):
            return False
        if TaskType(task_type) == TaskType.CUSTOM:
            return self.CUSTOM_FEATURE in features
        return True


class StaticPermissionOracle:
    """Allow-list oracle for Lite mode and tests.

    ``allowed_owners=None`` allows every owner.
    """

    def __init__(
        self,
        allowed_owners: Iterable[str] | None = None,
        *,
        denied_task_types: Iterable[TaskType | str] = (),
    ) -> None:
        self._allowed = None if allowed_owners is None else set(allowed_owners)
        self._denied = {TaskType(t) for t in denied_task_types}

    async def can_run(self, owner_id: str, task_type: TaskType) -> bool:
        if TaskType(task_type) in self._denied:
            return False
        return self._allowed is None or owner_id in self._allowed
