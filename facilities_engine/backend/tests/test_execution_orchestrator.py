# backend/tests/test_execution_orchestrator.py
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from maintenance_engine.errors import Conflict, ExternalServiceFailure, NotFound, ValidationError
from maintenance_engine.services.execution_orchestrator import ExecutionOrchestrator
from maintenance_engine.services.execution_planner import ExecutionPlanner

NOW = datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)


def _orchestrator(store, renderer, payments, notifier, now=NOW) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(
        store,
        renderer=renderer,
        payments=payments,
        notifier=notifier,
        clock=lambda: now,
    )


def test_successful_monthly_cycle(store, registry, renderer, payments, notifier, make_definition):
    rwo = make_definition()

    result = _orchestrator(store, renderer, payments, notifier).execute(rwo.id)

    assert result.outcome == "executed"
    assert result.next_execution == datetime(2024, 2, 15, tzinfo=timezone.utc)

    after = registry.get(rwo.id)
    assert after.next_execution == datetime(2024, 2, 15, tzinfo=timezone.utc)
    assert after.total_executions == 1
    assert after.successful_executions == 1
    assert after.failed_executions == 0
    assert after.last_execution == NOW

    [execution] = registry.list_executions(rwo.id)
    assert execution.id == result.execution_id
    assert execution.status == "executed"
    assert execution.execution_number == 1
    assert execution.scheduled_date == datetime(2024, 1, 15, tzinfo=timezone.utc)
    assert execution.invoice_number.startswith("INV-REC-")
    assert execution.invoice_number.endswith("-1")
    assert execution.payment_link_url == f"https://pay.test/{execution.invoice_number}"
    assert execution.email_sent is True
    assert execution.email_sent_at is not None
    assert execution.invoice_snapshot["totalAmount"] == 450.0
    assert execution.invoice_snapshot["lineItems"][0]["description"] == rwo.title


def test_cycle_artifacts(store, registry, renderer, payments, notifier, make_definition):
    rwo = make_definition()
    result = _orchestrator(store, renderer, payments, notifier).execute(rwo.id)
    execution = registry.executions.get(result.execution_id)

    assert [k for k, _ in renderer.calls] == ["invoice", "work_order"]

    assert payments.calls == [
        {
            "amount": 450.0,
            "description": rwo.title,
            "payer_email": "jessica@example.com",
            "payer_name": "Jessica Cabrera-Olimon",
            "reference": execution.invoice_number,
        }
    ]

    [mail] = notifier.sent
    assert mail["to"] == "jessica@example.com"
    assert mail["subject"] == f"Recurring Work Order #1 - {rwo.title}"
    assert execution.payment_link_url in mail["html_body"]
    assert [a.filename for a in mail["attachments"]] == [
        f"invoice-{execution.invoice_number}.pdf",
        f"work-order-{execution.work_order_number}.pdf",
    ]

    wo = store.get("workOrders", execution.work_order_id)
    assert wo.data["workOrderNumber"] == execution.work_order_number
    assert wo.data["workOrderNumber"].startswith("WO-")
    assert wo.data["title"] == f"{rwo.title} - Execution #1"
    assert wo.data["status"] == "approved"
    assert wo.data["recurringWorkOrderId"] == rwo.id
    assert wo.data["executionNumber"] == 1
    assert wo.data["isFromRecurringWorkOrder"] is True
    assert wo.data["timeline"][0]["userName"] == "Recurring Work Order System"


def test_pre_assigned_provider_makes_work_order_assigned(store, registry, renderer, payments, notifier, make_definition):
    rwo = make_definition(subcontractorId="sub-9", subcontractorName="Ace Hoods", subcontractorEmail="ace@example.com")
    result = _orchestrator(store, renderer, payments, notifier).execute(rwo.id)

    wo = store.get("workOrders", registry.executions.get(result.execution_id).work_order_id)
    assert wo.data["status"] == "assigned"
    assert wo.data["assignedTo"] == "sub-9"
    assert wo.data["assignedAt"]


def test_paused_definition_is_skipped_without_side_effects(store, registry, renderer, payments, notifier, make_definition):
    rwo = make_definition()
    registry.pause(rwo.id)

    result = _orchestrator(store, renderer, payments, notifier).execute(rwo.id)

    assert result.outcome == "skipped"
    assert result.execution_id is None
    assert registry.list_executions(rwo.id) == []
    after = registry.get(rwo.id)
    assert (after.total_executions, after.successful_executions, after.failed_executions) == (0, 0, 0)
    assert after.next_execution == rwo.next_execution
    assert renderer.calls == [] and payments.calls == [] and notifier.sent == []


def test_missing_definition(store, renderer, payments, notifier):
    with pytest.raises(NotFound):
        _orchestrator(store, renderer, payments, notifier).execute("nope")


def test_already_executed_execution_is_a_conflict(store, registry, renderer, payments, notifier, make_definition):
    rwo = make_definition()
    orch = _orchestrator(store, renderer, payments, notifier)
    done = orch.execute(rwo.id)
    payments.calls.clear()

    with pytest.raises(Conflict):
        orch.execute(rwo.id, done.execution_id)

    assert len(registry.list_executions(rwo.id)) == 1
    assert payments.calls == []


def test_execution_of_another_definition_is_rejected(store, registry, renderer, payments, notifier, make_definition):
    a = make_definition(title="A")
    b = make_definition(title="B")
    other = registry.executions.add(
        recurring_work_order_id=b.id,
        execution_number=1,
        scheduled_date=datetime(2024, 1, 15, tzinfo=timezone.utc),
        status="pending",
    )
    with pytest.raises(ValidationError):
        _orchestrator(store, renderer, payments, notifier).execute(a.id, other.id)


def test_completing_a_pending_execution(store, registry, renderer, payments, notifier, make_definition):
    rwo = make_definition()
    pending = registry.executions.add(
        recurring_work_order_id=rwo.id,
        execution_number=1,
        scheduled_date=datetime(2024, 1, 10, tzinfo=timezone.utc),
        status="pending",
    )

    result = _orchestrator(store, renderer, payments, notifier).execute(rwo.id, pending.id)

    assert result.execution_id == pending.id
    assert result.next_execution == datetime(2024, 2, 10, tzinfo=timezone.utc)
    [execution] = registry.list_executions(rwo.id)
    assert execution.status == "executed"
    wo = store.get("workOrders", execution.work_order_id)
    assert wo.data["executionId"] == pending.id


def test_payment_provider_failure_uses_placeholder(store, registry, renderer, payments, notifier, make_definition):
    payments.fail = True
    rwo = make_definition()

    result = _orchestrator(store, renderer, payments, notifier).execute(rwo.id)

    assert result.outcome == "executed"
    execution = registry.executions.get(result.execution_id)
    assert execution.status == "executed"
    assert execution.payment_link_url
    assert execution.payment_link_url.endswith(f"/failed?ref={execution.invoice_number}")
    assert registry.get(rwo.id).successful_executions == 1


def test_notification_failure_is_swallowed(store, registry, renderer, payments, notifier, make_definition):
    notifier.fail = True
    rwo = make_definition()

    result = _orchestrator(store, renderer, payments, notifier).execute(rwo.id)

    execution = registry.executions.get(result.execution_id)
    assert execution.status == "executed"
    assert execution.email_sent is False
    assert execution.email_sent_at is None
    after = registry.get(rwo.id)
    assert (after.total_executions, after.successful_executions) == (1, 1)


def test_renderer_failure_marks_execution_failed(store, registry, renderer, payments, notifier, make_definition):
    renderer.fail = True
    rwo = make_definition()

    with pytest.raises(ExternalServiceFailure) as ei:
        _orchestrator(store, renderer, payments, notifier).execute(rwo.id)

    [execution] = registry.list_executions(rwo.id)
    assert ei.value.execution_id == execution.id
    assert "renderer down" in ei.value.details
    assert execution.status == "failed"
    assert "Rendering invoice failed" in execution.failure_reason

    after = registry.get(rwo.id)
    assert after.failed_executions == 1
    assert after.total_executions == 0
    assert after.successful_executions == 0
    assert after.next_execution == rwo.next_execution
    assert payments.calls == []
    assert store.query("workOrders") == []


def test_failed_cycle_releases_its_claim(store, registry, renderer, payments, notifier, make_definition):
    renderer.fail = True
    rwo = make_definition()
    orch = _orchestrator(store, renderer, payments, notifier)

    with pytest.raises(ExternalServiceFailure):
        orch.execute(rwo.id)

    renderer.fail = False
    result = orch.execute(rwo.id)
    assert result.outcome == "executed"
    assert [e.status for e in registry.list_executions(rwo.id)] == ["failed", "executed"]


def test_re_render_from_snapshot(store, renderer, payments, notifier, make_definition):
    rwo = make_definition()
    orch = _orchestrator(store, renderer, payments, notifier)
    result = orch.execute(rwo.id)
    renderer.calls.clear()

    pdfs = orch.render_documents(result.execution_id)

    assert set(pdfs) == {"invoice", "work_order"}
    assert pdfs["invoice"].startswith(b"%PDF")
    assert [k for k, _ in renderer.calls] == ["invoice", "work_order"]


def test_re_render_without_snapshot(store, registry, renderer, payments, notifier, make_definition):
    rwo = make_definition()
    pending = registry.executions.add(
        recurring_work_order_id=rwo.id,
        execution_number=1,
        scheduled_date=datetime(2024, 1, 15, tzinfo=timezone.utc),
        status="pending",
    )
    with pytest.raises(Conflict):
        _orchestrator(store, renderer, payments, notifier).render_document(pending.id, "invoice")


def test_store_write_failure_mid_cycle_is_recorded(monkeypatch, store, registry, renderer, payments, notifier, make_definition):
    rwo = make_definition()
    real_add = store.add

    def add(collection, data):
        if collection == "workOrders":
            # not JSON serializable: the commit fails and the session needs a rollback
            return real_add(collection, {**data, "broken": object()})
        return real_add(collection, data)

    monkeypatch.setattr(store, "add", add)

    with pytest.raises(ExternalServiceFailure) as ei:
        _orchestrator(store, renderer, payments, notifier).execute(rwo.id)

    [execution] = registry.list_executions(rwo.id)
    assert ei.value.execution_id == execution.id
    assert execution.status == "failed"
    assert execution.failure_reason

    after = registry.get(rwo.id)
    assert after.failed_executions == 1
    assert after.total_executions == 0
    assert store.query("workOrders") == []
    assert store.query("executionClaims") == []

    monkeypatch.setattr(store, "add", real_add)
    result = _orchestrator(store, renderer, payments, notifier).execute(rwo.id)
    assert result.outcome == "executed"


def test_overdue_run_advances_one_cycle(store, registry, renderer, payments, notifier, make_definition, caplog):
    late = datetime(2024, 4, 1, 9, 0, tzinfo=timezone.utc)
    rwo = make_definition()

    with caplog.at_level("WARNING", logger="maintenance_engine.services.execution_orchestrator"):
        result = _orchestrator(store, renderer, payments, notifier, now=late).execute(rwo.id)

    # one cycle per run: the next date stays behind the last run until the trigger catches up
    assert result.next_execution == datetime(2024, 2, 15, tzinfo=timezone.utc)
    after = registry.get(rwo.id)
    assert after.last_execution == late
    assert after.next_execution < after.last_execution
    assert any(getattr(r, "event", None) == "overdue" for r in caplog.records)

    second = _orchestrator(store, renderer, payments, notifier, now=late).execute(rwo.id)
    assert second.next_execution == datetime(2024, 3, 15, tzinfo=timezone.utc)
    assert [e.scheduled_date for e in registry.list_executions(rwo.id)] == [
        datetime(2024, 1, 15, tzinfo=timezone.utc),
        datetime(2024, 2, 15, tzinfo=timezone.utc),
    ]


def test_pending_execution_reuses_its_pre_generated_work_order(store, registry, renderer, payments, notifier, make_definition):
    rwo = make_definition()
    pending = ExecutionPlanner(store).initialize_execution(rwo.id, datetime(2024, 1, 15, tzinfo=timezone.utc))
    generated = ExecutionPlanner(store).generate_work_order(pending.id)

    _orchestrator(store, renderer, payments, notifier).execute(rwo.id, pending.id)

    executed = registry.executions.get(pending.id)
    assert executed.status == "executed"
    assert executed.work_order_id == generated.work_order_id
    assert executed.work_order_number == generated.work_order_number
    [wo] = store.query("workOrders")
    assert wo.id == generated.work_order_id
    assert wo.data["executionId"] == pending.id
