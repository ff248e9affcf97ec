"""Unit tests for per-task-type action planning."""

from __future__ import annotations

from taskwarden.scheduling.routines import plan_actions


def test_inventory_check_plans_one_read(make_task) -> None:  # type: ignore[no-untyped-def]
    actions = plan_actions(make_task(parameters={"low_stock_threshold": 2}))
    assert [a.action_type for a in actions] == ["inventory_check"]
    assert actions[0].action_data["low_stock_threshold"] == 2


def test_price_optimization_marks_bulk_over_threshold(make_task) -> None:  # type: ignore[no-untyped-def]
    small = plan_actions(
        make_task(task_type="price_optimization", parameters={"product_ids": ["p1", "p2"]})
    )
    assert small[0].action_type == "price_update"
    assert small[0].action_data["price_change_percent"] == 10.0
    assert "bulk" not in small[0].action_data

    products = [f"p{i}" for i in range(11)]
    large = plan_actions(make_task(task_type="price_optimization", parameters={"product_ids": products}))
    assert large[0].action_data["bulk"] is True


def test_data_sync_plans_one_action_per_source(make_task) -> None:  # type: ignore[no-untyped-def]
    actions = plan_actions(make_task(task_type="data_sync", parameters={"sources": ["store", "erp"]}))
    assert [a.integration_id for a in actions] == ["store", "erp"]
    assert all(a.action_type == "data_sync" for a in actions)


def test_custom_forwards_action_and_payload(make_task) -> None:  # type: ignore[no-untyped-def]
    task = make_task(task_type="custom", parameters={"action_type": "tag_products", "payload": {"tag": "sale"}})
    actions = plan_actions(task)
    assert actions[0].action_type == "tag_products"
    assert actions[0].action_data == {"tag": "sale"}


def test_remaining_task_types_map_to_their_actions(make_task) -> None:  # type: ignore[no-untyped-def]
    assert plan_actions(make_task(task_type="order_fulfillment"))[0].action_type == "order_fulfill"
    assert plan_actions(make_task(task_type="marketing_automation"))[0].action_type == "marketing_campaign"
