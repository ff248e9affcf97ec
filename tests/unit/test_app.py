"""Unit tests for the TaskWarden application object."""

from __future__ import annotations

from datetime import timedelta

import pytest

from taskwarden.app import TaskWarden
from taskwarden.config.manager import ConfigManager
from taskwarden.config.models import TaskwardenConfig
from taskwarden.errors import TaskNotFoundError, TaskValidationError
from taskwarden.governance.approval import ApprovalStatus
from taskwarden.governance.permissions import StaticPermissionOracle
from taskwarden.scheduling.models import ExecutionStatus, TaskExecution


def _warden(store, registry, clock, fake_sleep, **kwargs) -> TaskWarden:  # type: ignore[no-untyped-def]
    return TaskWarden(store=store, executor=registry, clock=clock, sleep=fake_sleep, **kwargs)


def test_build_task_applies_configured_defaults(store, registry, clock, fake_sleep) -> None:  # type: ignore[no-untyped-def]
    config = TaskwardenConfig.model_validate(
        {
            "scheduler": {"default_timezone": "Europe/Paris"},
            "executor": {"default_max_retries": 1, "default_timeout_ms": 5000},
        }
    )
    warden = _warden(store, registry, clock, fake_sleep, config=config)
    task = warden.build_task(
        owner_id="owner-1",
        target_id="shop",
        task_type="inventory_check",
        frequency="hourly",
        name="Stock",
    )
    assert task.schedule.timezone == "Europe/Paris"
    assert task.max_retries == 1
    assert task.timeout_ms == 5000

    with pytest.raises(TaskValidationError):
        warden.build_task(owner_id="o", target_id="s", task_type="custom", frequency="daily", name="x")


@pytest.mark.asyncio
async def test_add_task_is_idempotent_and_arms_when_started(store, registry, clock, fake_sleep, make_task) -> None:  # type: ignore[no-untyped-def]
    warden = _warden(store, registry, clock, fake_sleep)
    task = make_task()

    added = await warden.add_task(task)
    assert not warden.scheduler.is_armed(task.id)
    again = await warden.add_task(make_task(id=task.id, name="renamed"))
    assert again.name == added.name

    await warden.start()
    try:
        assert warden.scheduler.is_armed(task.id)
        late = await warden.add_task(make_task(name="late"))
        assert late.next_run is not None and late.next_run > clock.now
        assert warden.scheduler.is_armed(late.id)
    finally:
        await warden.stop()
    assert warden.scheduler.armed_task_ids() == []


@pytest.mark.asyncio
async def test_permission_denied_tasks_are_not_armed(store, registry, clock, fake_sleep, make_task) -> None:  # type: ignore[no-untyped-def]
    warden = _warden(store, registry, clock, fake_sleep, permissions=StaticPermissionOracle(["someone-else"]))
    task = await warden.add_task(make_task())
    await warden.start()
    try:
        assert not warden.scheduler.is_armed(task.id)
        assert warden.health_status()["permission_skipped_tasks"] == 1
    finally:
        await warden.stop()


@pytest.mark.asyncio
async def test_run_task_now_and_status(store, registry, clock, fake_sleep, make_task) -> None:  # type: ignore[no-untyped-def]
    warden = _warden(store, registry, clock, fake_sleep)
    task = await warden.add_task(make_task())

    execution = await warden.run_task_now(task.id)
    assert execution.status == ExecutionStatus.COMPLETED

    status = await warden.get_task_status(task.id)
    assert status.task.success_count == 1
    assert status.task.next_run > clock.now
    assert [e.id for e in status.recent_executions] == [execution.id]
    payload = status.to_dict()
    assert payload["task"]["run_count"] == 1
    assert payload["recent_executions"][0]["status"] == "completed"

    with pytest.raises(TaskNotFoundError):
        await warden.run_task_now("missing")
    with pytest.raises(TaskNotFoundError):
        await warden.get_task_status("missing")
    await warden.stop()


@pytest.mark.asyncio
async def test_recent_executions_are_capped(store, registry, clock, fake_sleep, make_task) -> None:  # type: ignore[no-untyped-def]
    config = TaskwardenConfig.model_validate({"scheduler": {"recent_executions_limit": 2}})
    warden = _warden(store, registry, clock, fake_sleep, config=config)
    task = await warden.add_task(make_task())
    for _ in range(3):
        clock.advance(minutes=1)
        await warden.run_task_now(task.id)
    status = await warden.get_task_status(task.id)
    assert len(status.recent_executions) == 2
    assert status.recent_executions[0].started_at == clock.now
    await warden.stop()


@pytest.mark.asyncio
async def test_pause_resume_remove(store, registry, clock, fake_sleep, make_task) -> None:  # type: ignore[no-untyped-def]
    warden = _warden(store, registry, clock, fake_sleep)
    task = await warden.add_task(make_task())
    await warden.start()
    try:
        await warden.pause_task(task.id)
        assert not (await warden.get_task_status(task.id)).armed
        assert await warden.resume_task(task.id) is not None
        assert (await warden.get_task_status(task.id)).armed
        assert await warden.remove_task(task.id) is True
        assert await warden.list_tasks() == []
    finally:
        await warden.stop()


@pytest.mark.asyncio
async def test_approval_flow_through_warden(store, registry, clock, fake_sleep, make_task) -> None:  # type: ignore[no-untyped-def]
    warden = _warden(store, registry, clock, fake_sleep)
    task = await warden.add_task(make_task(task_type="price_optimization", parameters={"product_ids": ["p1"]}))

    execution = await warden.run_task_now(task.id)
    request_id = execution.result["approval_request_id"]
    pending = await warden.list_approvals("owner-1", "pending")
    assert [r.id for r in pending] == [request_id]

    resolved = await warden.respond_to_approval(request_id, True, owner_id="owner-1")
    assert resolved.status == ApprovalStatus.APPROVED
    assert registry.action_types() == ["price_update"]

    stats = await warden.approval_stats("owner-1")
    assert stats.approved == 1
    await warden.stop()


@pytest.mark.asyncio
async def test_maintenance_pass(store, registry, clock, fake_sleep, make_task) -> None:  # type: ignore[no-untyped-def]
    warden = _warden(store, registry, clock, fake_sleep)
    task = await warden.add_task(make_task())
    old = TaskExecution(task_id=task.id, owner_id=task.owner_id, target_id=task.target_id)
    old.transition(ExecutionStatus.RUNNING, at=clock.now - timedelta(days=40))
    old.transition(ExecutionStatus.COMPLETED, at=clock.now - timedelta(days=40))
    await store.save_execution(old)
    await warden.gate.create_request(
        owner_id="owner-1",
        target_id="shop",
        action_type="price_update",
        action_data={},
        ttl=timedelta(minutes=1),
    )
    clock.advance(minutes=5)

    report = await warden.run_maintenance()

    assert report == {
        "expired_approvals": 1,
        "purged_executions": 1,
        "reconciled_writes": 0,
        "rearmed_tasks": 0,
    }
    with pytest.raises(ValueError):
        await warden.purge_old_executions(0)


@pytest.mark.asyncio
async def test_bind_config_follows_hot_reload(tmp_path, store, registry, clock, fake_sleep) -> None:  # type: ignore[no-untyped-def]
    cfg_path = tmp_path / "taskwarden.yaml"
    cfg_path.write_text("approval:\n  gated_risk_levels: [high, critical]\n", encoding="utf-8")
    manager = ConfigManager.load(config_path=str(cfg_path))
    warden = _warden(store, registry, clock, fake_sleep, config=manager.get())
    warden.bind_config(manager)

    cfg_path.write_text(
        "approval:\n  gated_risk_levels: [critical]\nscheduler:\n  retention_days: 7\n",
        encoding="utf-8",
    )
    manager.reload()

    assert warden.gate.settings.gated_risk_levels == ["critical"]
    assert warden.config.scheduler.retention_days == 7


@pytest.mark.asyncio
async def test_start_stop_restart_and_health(store, registry, clock, fake_sleep, make_task) -> None:  # type: ignore[no-untyped-def]
    warden = _warden(store, registry, clock, fake_sleep)
    task = await warden.add_task(make_task())

    await warden.start()
    health = warden.health_status()
    assert health["started"] is True
    assert health["armed_tasks"] == 1
    assert health["maintenance_running"] is True
    await warden.stop()
    assert warden.health_status()["started"] is False

    await warden.start()
    assert warden.scheduler.is_armed(task.id)
    await warden.stop()


@pytest.mark.asyncio
async def test_add_task_rejects_unparseable_cron(store, registry, clock, fake_sleep, make_task) -> None:  # type: ignore[no-untyped-def]
    warden = _warden(store, registry, clock, fake_sleep)
    with pytest.raises(TaskValidationError):
        await warden.add_task(make_task(frequency="custom", cron_expression="every tuesday"))
    assert await warden.list_tasks() == []
