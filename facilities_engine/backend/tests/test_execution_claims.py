# backend/tests/test_execution_claims.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from maintenance_engine.errors import Conflict
from maintenance_engine.services.claims import acquire_claim, claim_key, complete_claim, release_claim
from maintenance_engine.services.execution_orchestrator import ExecutionOrchestrator

NOW = datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)
CYCLE = datetime(2024, 1, 15, tzinfo=timezone.utc)


def test_second_owner_loses_while_claim_is_live(store):
    assert acquire_claim(store, recurring_work_order_id="r1", scheduled_date=CYCLE, owner="a", ttl_seconds=60, now=NOW)
    assert not acquire_claim(store, recurring_work_order_id="r1", scheduled_date=CYCLE, owner="b", ttl_seconds=60, now=NOW)
    # same owner renews
    assert acquire_claim(store, recurring_work_order_id="r1", scheduled_date=CYCLE, owner="a", ttl_seconds=60, now=NOW)


def test_expired_claim_can_be_taken_over(store):
    acquire_claim(store, recurring_work_order_id="r1", scheduled_date=CYCLE, owner="a", ttl_seconds=60, now=NOW)
    later = NOW + timedelta(minutes=5)
    assert acquire_claim(store, recurring_work_order_id="r1", scheduled_date=CYCLE, owner="b", ttl_seconds=60, now=later)
    assert store.get("executionClaims", claim_key("r1", CYCLE)).data["owner"] == "b"


def test_completed_claim_never_expires(store):
    acquire_claim(store, recurring_work_order_id="r1", scheduled_date=CYCLE, owner="a", ttl_seconds=60, now=NOW)
    complete_claim(store, recurring_work_order_id="r1", scheduled_date=CYCLE, execution_id="e1")

    much_later = NOW + timedelta(days=30)
    assert not acquire_claim(store, recurring_work_order_id="r1", scheduled_date=CYCLE, owner="a", ttl_seconds=60, now=much_later)


def test_release_only_by_owner(store):
    acquire_claim(store, recurring_work_order_id="r1", scheduled_date=CYCLE, owner="a", ttl_seconds=60, now=NOW)
    assert not release_claim(store, recurring_work_order_id="r1", scheduled_date=CYCLE, owner="b")
    assert release_claim(store, recurring_work_order_id="r1", scheduled_date=CYCLE, owner="a")
    assert store.get("executionClaims", claim_key("r1", CYCLE)) is None


def test_concurrent_execute_of_same_cycle_is_rejected(store, registry, renderer, payments, notifier, make_definition):
    rwo = make_definition()
    # another worker is mid-cycle on the same scheduled date
    acquire_claim(store, recurring_work_order_id=rwo.id, scheduled_date=CYCLE, owner="other-worker", ttl_seconds=900, now=NOW)

    orch = ExecutionOrchestrator(store, renderer=renderer, payments=payments, notifier=notifier, clock=lambda: NOW)
    with pytest.raises(Conflict):
        orch.execute(rwo.id)

    assert registry.list_executions(rwo.id) == []
    assert payments.calls == []
    assert store.query("workOrders") == []
    assert registry.get(rwo.id).total_executions == 0


def test_replaying_a_finished_cycle_is_rejected(store, registry, renderer, payments, notifier, make_definition):
    rwo = make_definition()
    orch = ExecutionOrchestrator(store, renderer=renderer, payments=payments, notifier=notifier, clock=lambda: NOW)
    orch.execute(rwo.id)

    # a stale caller that still sees nextExecution = Jan 15 collides on the completed claim
    complete = store.get("executionClaims", claim_key(rwo.id, CYCLE))
    assert complete.data["state"] == "done"
    assert not acquire_claim(store, recurring_work_order_id=rwo.id, scheduled_date=CYCLE, owner="late", ttl_seconds=900, now=NOW)
