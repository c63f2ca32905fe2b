# backend/tests/test_execution_planner.py
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from maintenance_engine.errors import Conflict, ValidationError
from maintenance_engine.services.execution_planner import ExecutionPlanner


def test_pending_executions_skip_days_already_planned(store, registry, make_definition):
    rwo = make_definition(
        nextServiceDates=[
            "2024-03-01T00:00:00Z",
            "2024-02-01T00:00:00Z",
            "2024-02-01T15:30:00Z",  # same calendar day
        ]
    )
    registry.executions.add(
        recurring_work_order_id=rwo.id,
        execution_number=1,
        scheduled_date=datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc),
        status="executed",
    )

    out = ExecutionPlanner(store).create_pending_executions(rwo.id)

    assert (out.total, out.created, out.skipped) == (3, 1, 2)
    assert out.errors == []
    pending = [e for e in registry.list_executions(rwo.id) if e.status == "pending"]
    assert [(e.execution_number, e.scheduled_date) for e in pending] == [
        (2, datetime(2024, 2, 1, tzinfo=timezone.utc))
    ]


def test_pending_executions_need_service_dates(store, make_definition):
    rwo = make_definition()
    with pytest.raises(ValidationError):
        ExecutionPlanner(store).create_pending_executions(rwo.id)


def test_initialize_execution(store, registry, make_definition):
    rwo = make_definition()
    planner = ExecutionPlanner(store)

    e = planner.initialize_execution(rwo.id, datetime(2024, 4, 1, 8, 0, tzinfo=timezone.utc))
    assert e.status == "pending"
    assert e.execution_number == 1

    with pytest.raises(Conflict):
        planner.initialize_execution(rwo.id, datetime(2024, 4, 1, 20, 0, tzinfo=timezone.utc))

    second = planner.initialize_execution(rwo.id, datetime(2024, 5, 1, tzinfo=timezone.utc))
    assert second.execution_number == 2


def test_planner_refuses_inactive_definitions(store, registry, make_definition):
    rwo = make_definition(nextServiceDates=["2024-02-01T00:00:00Z"])
    registry.pause(rwo.id)
    planner = ExecutionPlanner(store)

    with pytest.raises(Conflict):
        planner.create_pending_executions(rwo.id)
    with pytest.raises(Conflict):
        planner.initialize_execution(rwo.id, datetime(2024, 2, 1, tzinfo=timezone.utc))
    assert registry.list_executions(rwo.id) == []


def test_generate_work_order_for_pending_execution(store, registry, make_definition):
    rwo = make_definition()
    planner = ExecutionPlanner(store, clock=lambda: datetime(2024, 1, 10, tzinfo=timezone.utc))
    pending = planner.initialize_execution(rwo.id, datetime(2024, 2, 1, tzinfo=timezone.utc))

    out = planner.generate_work_order(pending.id)

    assert out.execution_id == pending.id
    assert out.work_order_number == "WO-44800000-EX1"
    [wo] = store.query("workOrders")
    assert wo.id == out.work_order_id
    assert wo.data["executionId"] == pending.id
    assert wo.data["workOrderNumber"] == out.work_order_number

    updated = registry.executions.get(pending.id)
    assert (updated.work_order_id, updated.work_order_number) == (out.work_order_id, out.work_order_number)

    with pytest.raises(Conflict):
        planner.generate_work_order(pending.id)
    assert len(store.query("workOrders")) == 1


def test_create_execution_work_orders(store, registry, make_definition):
    rwo = make_definition(nextServiceDates=["2024-02-01T00:00:00Z", "2024-03-01T00:00:00Z", "2024-04-01T00:00:00Z"])
    planner = ExecutionPlanner(store)
    planner.create_pending_executions(rwo.id)
    first, second, third = registry.list_executions(rwo.id)
    planner.generate_work_order(first.id)
    registry.executions.update(third.id, {"status": "executed"})

    out = planner.create_execution_work_orders(rwo.id)

    assert (out.total, out.created, out.skipped) == (3, 1, 2)
    assert out.errors == []
    assert registry.executions.get(second.id).work_order_id
    assert registry.executions.get(third.id).work_order_id is None
    numbers = [d.data["workOrderNumber"] for d in store.query("workOrders")]
    assert len(set(numbers)) == 2
    assert numbers[1].endswith(second.id[-4:].upper())

    again = planner.create_execution_work_orders(rwo.id)
    assert (again.created, again.skipped) == (0, 3)
