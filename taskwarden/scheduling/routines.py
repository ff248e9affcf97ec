"""Per-task-type routines: which capability actions a task run performs."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from taskwarden.scheduling.models import (
    CustomTaskParams,
    DataSyncParams,
    InventoryCheckParams,
    MarketingAutomationParams,
    OrderFulfillmentParams,
    PriceOptimizationParams,
    ScheduledTask,
    TaskType,
)

BULK_ITEM_THRESHOLD = 10


@dataclass(frozen=True)
class PlannedAction:
    """One capability call derived from a task's typed parameters."""

    action_type: str
    action_data: dict[str, Any] = field(default_factory=dict)
    integration_id: str = "store"


def _inventory_check(params: InventoryCheckParams) -> list[PlannedAction]:
    return [PlannedAction("inventory_check", params.model_dump(mode="json"))]


def _price_optimization(params: PriceOptimizationParams) -> list[PlannedAction]:
    data: dict[str, Any] = {
        "strategy": params.strategy,
        "price_change_percent": params.max_price_change_percent,
        "min_margin_percent": params.min_margin_percent,
        "product_ids": list(params.product_ids),
    }
    if len(params.product_ids) > BULK_ITEM_THRESHOLD:
        data["bulk"] = True
    return [PlannedAction("price_update", data)]


def _order_fulfillment(params: OrderFulfillmentParams) -> list[PlannedAction]:
    return [PlannedAction("order_fulfill", params.model_dump(mode="json"))]


def _marketing_automation(params: MarketingAutomationParams) -> list[PlannedAction]:
    return [PlannedAction("marketing_campaign", params.model_dump(mode="json"))]


def _data_sync(params: DataSyncParams) -> list[PlannedAction]:
    return [
        PlannedAction(
            "data_sync",
            {"source": source, "direction": params.direction, "full_resync": params.full_resync},
            integration_id=source,
        )
        for source in params.sources
    ]


def _custom(params: CustomTaskParams) -> list[PlannedAction]:
    return [PlannedAction(params.action_type, dict(params.payload))]


_ROUTINES: dict[TaskType, Callable[[Any], list[PlannedAction]]] = {
    TaskType.INVENTORY_CHECK: _inventory_check,
    TaskType.PRICE_OPTIMIZATION: _price_optimization,
    TaskType.ORDER_FULFILLMENT: _order_fulfillment,
    TaskType.MARKETING_AUTOMATION: _marketing_automation,
    TaskType.DATA_SYNC: _data_sync,
    TaskType.CUSTOM: _custom,
}


def plan_actions(task: ScheduledTask) -> list[PlannedAction]:
    """Return the ordered capability actions one run of *task* performs."""
    return _ROUTINES[task.task_type](task.typed_parameters)
