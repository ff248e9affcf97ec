"""Risk assessment for store actions an agent wants to perform."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class RiskLevel(str, Enum):
    """Risk classification used to decide whether approval is required."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class RiskAssessment:
    """Scored risk for one action with the factors that raised it."""

    level: RiskLevel
    score: int
    factors: tuple[str, ...] = ()


@dataclass(frozen=True)
class ImpactEstimate:
    """What an action will touch if it runs."""

    affected_items: int
    estimated_cost: float
    reversible: bool
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "affected_items": self.affected_items,
            "estimated_cost": self.estimated_cost,
            "reversible": self.reversible,
            "description": self.description,
        }


def _as_float(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _count(value: Any) -> int:
    return len(value) if isinstance(value, list | tuple) else 0


class RiskAssessor:
    """Assess risk level for one action from a base score plus risk factors."""

    _ACTION_BASE: dict[str, int] = {
        "inventory_check": 0,
        "data_sync": 1,
        "inventory_update": 1,
        "product_update": 1,
        "customer_create": 1,
        "product_create": 2,
        "order_fulfill": 2,
        "webhook_create": 2,
        "marketing_campaign": 3,
        "discount_create": 3,
        "price_update": 5,
        "bulk_operations": 5,
    }

    def __init__(
        self,
        *,
        base_scores: dict[str, int] | None = None,
        default_score: int = 3,
        bulk_quantity_threshold: int = 10,
        price_change_threshold_percent: float = 20.0,
        financial_impact_threshold: float = 1000.0,
    ) -> None:
        if default_score < 0:
            raise ValueError("default_score must be non-negative")
        self._base = dict(self._ACTION_BASE)
        if base_scores:
            for action_type, score in base_scores.items():
                if score < 0:
                    raise ValueError("risk scores must be non-negative")
                self._base[action_type.strip().lower()] = int(score)
        self._default = default_score
        self._bulk_threshold = bulk_quantity_threshold
        self._price_threshold = price_change_threshold_percent
        self._financial_threshold = financial_impact_threshold

    def assess(self, action_type: str, action_data: dict[str, Any] | None = None) -> RiskAssessment:
        """Score *action_type* with *action_data* and map it to a RiskLevel."""
        data = action_data or {}
        score = self._base.get(action_type.strip().lower(), self._default)
        factors: list[str] = []

        if data.get("bulk") is True or _as_float(data.get("quantity")) > self._bulk_threshold:
            score += 2
            factors.append("Bulk operation")
        if abs(_as_float(data.get("price_change_percent"))) > self._price_threshold:
            score += 3
            factors.append("Significant price change")
        if data.get("irreversible") is True:
            score += 2
            factors.append("Irreversible action")
        financial = max(_as_float(data.get("financial_impact")), _as_float(data.get("budget")))
        if financial > self._financial_threshold:
            score += 3
            factors.append("High financial impact")

        return RiskAssessment(level=self._score_to_level(score), score=score, factors=tuple(factors))

    def estimate_impact(self, action_type: str, action_data: dict[str, Any] | None = None) -> ImpactEstimate:
        """Estimate affected items, cost and reversibility of an action."""
        data = action_data or {}
        if action_type == "price_update":
            affected = _count(data.get("product_ids")) or 1
            return ImpactEstimate(
                affected_items=affected,
                estimated_cost=_as_float(data.get("revenue_impact")),
                reversible=True,
                description=f"Update pricing for {affected} product(s)",
            )
        if action_type == "bulk_operations":
            affected = int(_as_float(data.get("item_count"))) or _count(data.get("items"))
            return ImpactEstimate(
                affected_items=affected,
                estimated_cost=0.0,
                reversible=data.get("reversible") is not False,
                description=f"Bulk operation affecting {affected} items",
            )
        if action_type == "marketing_campaign":
            budget = _as_float(data.get("budget"))
            return ImpactEstimate(
                affected_items=1,
                estimated_cost=budget,
                reversible=False,
                description=f"Launch marketing campaign with ${budget:.2f} budget",
            )
        if action_type == "inventory_update":
            affected = _count(data.get("variants")) or 1
            return ImpactEstimate(
                affected_items=affected,
                estimated_cost=0.0,
                reversible=True,
                description=f"Update inventory for {affected} variant(s)",
            )
        if action_type == "order_fulfill":
            affected = _count(data.get("order_ids")) or 1
            return ImpactEstimate(
                affected_items=affected,
                estimated_cost=0.0,
                reversible=False,
                description=f"Fulfill {affected} order(s)",
            )
        return ImpactEstimate(
            affected_items=1,
            estimated_cost=0.0,
            reversible=data.get("irreversible") is not True,
            description=f"Execute {action_type.replace('_', ' ')}",
        )

    @staticmethod
    def describe(action_type: str, action_data: dict[str, Any] | None = None) -> str:
        """Human-readable one-line description shown to the approving user."""
        data = action_data or {}
        if action_type == "price_update":
            count = _count(data.get("product_ids")) or 1
            return f"Update product pricing ({count} products)"
        if action_type == "bulk_operations":
            return f"Perform bulk operation on {data.get('item_count') or 'multiple'} items"
        if action_type == "marketing_campaign":
            return f"Launch marketing campaign: {data.get('campaign_name') or 'Untitled'}"
        if action_type == "inventory_update":
            return f"Update inventory levels for {data.get('product_title') or 'product'}"
        if action_type == "order_fulfill":
            count = _count(data.get("order_ids"))
            return f"Fulfill {count} order(s)" if count else "Fulfill pending orders"
        return f"Execute {action_type.replace('_', ' ')}"

    @staticmethod
    def _score_to_level(score: int) -> RiskLevel:
        if score <= 2:
            return RiskLevel.LOW
        if score <= 4:
            return RiskLevel.MEDIUM
        if score <= 6:
            return RiskLevel.HIGH
        return RiskLevel.CRITICAL
