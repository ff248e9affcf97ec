"""Unit and property tests for ApprovalGate."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from taskwarden.capabilities import CapabilityRegistry
from taskwarden.config.models import ApprovalConfig
from taskwarden.errors import (
    ApprovalExpiredError,
    ApprovalNotFoundError,
    CapabilityError,
    InvalidStateError,
)
from taskwarden.governance.approval import CANCELLED_REASON, ApprovalGate, ApprovalStatus
from taskwarden.governance.risk_assessor import RiskLevel
from taskwarden.store.inmemory import InMemoryStore
from tests.helpers import FakeClock, RecordingRegistry


def _gate(store, registry, clock, **kwargs) -> ApprovalGate:  # type: ignore[no-untyped-def]
    return ApprovalGate(store, registry, clock=clock, **kwargs)


async def _price_request(gate: ApprovalGate, **kwargs):  # type: ignore[no-untyped-def]
    fields = {
        "owner_id": "owner-1",
        "target_id": "shop-1.example.com",
        "action_type": "price_update",
        "action_data": {"product_ids": ["p1", "p2"], "price_change_percent": 10},
    }
    fields.update(kwargs)
    return await gate.create_request(**fields)


@pytest.mark.asyncio
async def test_low_risk_actions_pass_through(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    assert await gate.intercept(
        owner_id="owner-1", target_id="shop", action_type="inventory_check", action_data={}
    ) is None
    assert await store.list_approvals() == []


@pytest.mark.asyncio
async def test_high_risk_action_creates_pending_request(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    request = await gate.intercept(
        owner_id="owner-1",
        target_id="shop",
        action_type="price_update",
        action_data={"product_ids": ["p1"], "price_change_percent": 5},
        task_id="task-1",
    )
    assert request is not None
    assert request.status == ApprovalStatus.PENDING
    assert request.risk_level == RiskLevel.HIGH
    assert request.expires_at == clock.now + timedelta(hours=4)
    assert request.action_description == "Update product pricing (1 products)"
    assert request.estimated_impact["affected_items"] == 1
    assert (await store.get_approval(request.id)).status == ApprovalStatus.PENDING


@pytest.mark.asyncio
async def test_pending_request_is_reused_until_it_expires(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    kwargs = {
        "owner_id": "owner-1",
        "target_id": "shop",
        "action_type": "price_update",
        "action_data": {},
        "task_id": "task-1",
    }
    first = await gate.intercept(**kwargs)
    assert (await gate.intercept(**kwargs)).id == first.id

    clock.advance(hours=5)
    third = await gate.intercept(**kwargs)
    assert third.id != first.id
    assert (await store.get_approval(first.id)).status == ApprovalStatus.EXPIRED


@pytest.mark.asyncio
async def test_gating_follows_settings(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    gate.apply_settings(ApprovalConfig(gated_risk_levels=["critical"], ttl_seconds_by_risk={"critical": 60}))
    assert await gate.intercept(owner_id="o", target_id="s", action_type="price_update", action_data={}) is None
    request = await gate.intercept(
        owner_id="o", target_id="s", action_type="price_update", action_data={"price_change_percent": 50}
    )
    assert request.risk_level == RiskLevel.CRITICAL
    assert request.expires_at == clock.now + timedelta(seconds=60)


@pytest.mark.asyncio
async def test_approve_executes_action_with_modified_params(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    request = await _price_request(gate, task_id="task-1")
    clock.advance(minutes=30)

    resolved = await gate.respond(request.id, True, "looks fine", {"product_ids": ["p1"], "price_change_percent": 5})

    assert resolved.status == ApprovalStatus.APPROVED
    assert resolved.responded_at == clock.now
    assert resolved.execution_result == {"ok": True}
    assert resolved.executed_at == clock.now
    action_type, params, context = registry.calls[0]
    assert action_type == "price_update"
    assert params == {"product_ids": ["p1"], "price_change_percent": 5}
    assert context.approval_request_id == request.id
    stored = await store.get_approval(request.id)
    assert stored.execution_result == {"ok": True}
    assert stored.modified_params == {"product_ids": ["p1"], "price_change_percent": 5}


@pytest.mark.asyncio
async def test_reject_does_not_execute(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    request = await _price_request(gate)
    resolved = await gate.respond(request.id, False, "too aggressive")
    assert resolved.status == ApprovalStatus.REJECTED
    assert resolved.response_reason == "too aggressive"
    assert registry.calls == []


@pytest.mark.asyncio
async def test_failed_approved_action_is_recorded(store, clock) -> None:  # type: ignore[no-untyped-def]
    registry = CapabilityRegistry()

    def _reject(params, ctx):  # type: ignore[no-untyped-def]
        raise CapabilityError("price below cost", retryable=False)

    registry.register_handler("price_update", _reject)
    gate = _gate(store, registry, clock)
    request = await _price_request(gate)

    resolved = await gate.respond(request.id, True)

    assert resolved.status == ApprovalStatus.APPROVED
    assert resolved.execution_error == "price below cost"
    assert (await store.get_approval(request.id)).execution_error == "price below cost"


@pytest.mark.asyncio
async def test_respond_after_window_expires_request(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    request = await _price_request(gate, ttl=timedelta(hours=1))
    clock.advance(minutes=61)

    with pytest.raises(ApprovalExpiredError):
        await gate.respond(request.id, True)

    stored = await store.get_approval(request.id)
    assert stored.status == ApprovalStatus.EXPIRED
    assert registry.calls == []
    with pytest.raises(ApprovalExpiredError):
        await gate.respond(request.id, False)


@pytest.mark.asyncio
async def test_window_end_is_exclusive(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    request = await _price_request(gate, ttl=timedelta(hours=1))
    clock.advance(hours=1)
    with pytest.raises(ApprovalExpiredError):
        await gate.respond(request.id, True)


@pytest.mark.asyncio
async def test_second_response_is_rejected(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    request = await _price_request(gate)
    await gate.respond(request.id, False)
    with pytest.raises(InvalidStateError) as excinfo:
        await gate.respond(request.id, True)
    assert excinfo.value.current == "rejected"
    assert registry.calls == []


@pytest.mark.asyncio
async def test_concurrent_responses_resolve_once(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    request = await _price_request(gate)
    outcomes = await asyncio.gather(
        gate.respond(request.id, True),
        gate.respond(request.id, False),
        return_exceptions=True,
    )
    errors = [o for o in outcomes if isinstance(o, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], InvalidStateError)
    assert len(registry.calls) <= 1


@pytest.mark.asyncio
async def test_owner_scoping(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    request = await _price_request(gate)
    with pytest.raises(ApprovalNotFoundError):
        await gate.respond(request.id, True, owner_id="owner-2")
    with pytest.raises(ApprovalNotFoundError):
        await gate.get("approval_missing")
    assert (await gate.get(request.id, owner_id="owner-1")).id == request.id


@pytest.mark.asyncio
async def test_cancel_semantics(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    pending = await _price_request(gate)
    cancelled = await gate.cancel(pending.id)
    assert cancelled.status == ApprovalStatus.REJECTED
    assert cancelled.response_reason == CANCELLED_REASON
    assert cancelled.is_cancelled
    assert (await gate.cancel(pending.id)).responded_at == cancelled.responded_at

    approved = await _price_request(gate)
    await gate.respond(approved.id, True)
    with pytest.raises(InvalidStateError):
        await gate.cancel(approved.id)

    stale = await _price_request(gate, ttl=timedelta(minutes=5))
    clock.advance(minutes=10)
    assert (await gate.cancel(stale.id)).status == ApprovalStatus.EXPIRED


@pytest.mark.asyncio
async def test_list_requests_sweeps_expired_first(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    short = await _price_request(gate, ttl=timedelta(minutes=5))
    clock.advance(minutes=1)
    long = await _price_request(gate, ttl=timedelta(hours=5))
    clock.advance(minutes=10)

    pending = await gate.list_requests("owner-1", "pending")
    assert [r.id for r in pending] == [long.id]
    expired = await gate.list_requests("owner-1", ApprovalStatus.EXPIRED)
    assert [r.id for r in expired] == [short.id]
    assert [r.id for r in await gate.list_requests("owner-1")] == [long.id, short.id]
    assert await gate.list_requests("owner-2") == []


@pytest.mark.asyncio
async def test_get_lazily_expires(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    request = await _price_request(gate, ttl=timedelta(minutes=5))
    clock.advance(minutes=6)
    assert (await gate.get(request.id)).status == ApprovalStatus.EXPIRED


@pytest.mark.asyncio
async def test_stats_counts_and_average_response(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    approved = await _price_request(gate)
    rejected = await _price_request(gate)
    await _price_request(gate)  # stays pending
    await _price_request(gate, ttl=timedelta(minutes=30))  # expires
    cancelled = await _price_request(gate)

    clock.advance(hours=1)
    await gate.respond(rejected.id, False)
    clock.advance(hours=1)
    await gate.respond(approved.id, True)
    await gate.cancel(cancelled.id)

    stats = await gate.stats("owner-1")
    assert stats.to_dict() == {
        "total": 5,
        "pending": 1,
        "approved": 1,
        "rejected": 2,
        "expired": 1,
        "average_response_hours": 1.5,
    }

    clock.advance(days=31)
    assert (await gate.stats("owner-1")).total == 0
    assert (await gate.stats("owner-1", window_days=60)).total == 5


@pytest.mark.asyncio
async def test_expire_pending_counts_only_overdue(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    await _price_request(gate, ttl=timedelta(minutes=5))
    await _price_request(gate, ttl=timedelta(hours=5))
    clock.advance(minutes=5)
    assert await gate.expire_pending() == 1
    assert await gate.expire_pending() == 0


@pytest.mark.asyncio
async def test_create_request_rejects_non_positive_ttl(store, registry, clock) -> None:  # type: ignore[no-untyped-def]
    gate = _gate(store, registry, clock)
    with pytest.raises(ValueError):
        await _price_request(gate, ttl=timedelta(0))


_operations = st.lists(
    st.one_of(
        st.tuples(st.just("approve"), st.none()),
        st.tuples(st.just("reject"), st.none()),
        st.tuples(st.just("cancel"), st.none()),
        st.tuples(st.just("advance"), st.integers(min_value=1, max_value=180)),
    ),
    max_size=8,
)


@pytest.mark.asyncio
@settings(max_examples=60, deadline=None)
@given(operations=_operations)
async def test_property_status_changes_at_most_once(operations: list[tuple[str, int | None]]) -> None:
    """Property: once a request leaves pending its status never changes again."""
    clock = FakeClock()
    store = InMemoryStore()
    registry = RecordingRegistry()
    registry.register_handler("price_update", lambda params, ctx: {"ok": True})
    gate = ApprovalGate(store, registry, clock=clock)
    request = await _price_request(gate, ttl=timedelta(hours=1))

    history = [ApprovalStatus.PENDING]
    for op, minutes in operations:
        try:
            if op == "approve":
                await gate.respond(request.id, True)
            elif op == "reject":
                await gate.respond(request.id, False)
            elif op == "cancel":
                await gate.cancel(request.id)
            else:
                clock.advance(minutes=minutes or 0)
        except (ApprovalExpiredError, InvalidStateError):
            pass
        status = (await store.get_approval(request.id)).status
        if history[-1] != status:
            history.append(status)

    assert len(history) <= 2
    if len(history) == 2:
        assert history[0] == ApprovalStatus.PENDING
    assert len(registry.calls) == (1 if history[-1] == ApprovalStatus.APPROVED else 0)
