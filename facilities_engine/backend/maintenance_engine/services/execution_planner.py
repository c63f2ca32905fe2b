# backend/maintenance_engine/services/execution_planner.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..domain import documents
from ..domain.numbering import generated_work_order_number
from ..errors import Conflict, EngineError, ValidationError
from ..schemas import (
    Execution,
    ExecutionWorkOrdersOut,
    GeneratedWorkOrderOut,
    PendingExecutionsOut,
    RecurringWorkOrder,
)
from ..store import DocumentStore
from .execution_orchestrator import WORK_ORDERS
from .registry import RecurringWorkOrderRegistry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionPlanner:
    """Pre-creates pending executions (and optionally their work orders) that an external trigger later completes."""

    def __init__(self, store: DocumentStore, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.store = store
        self.registry = RecurringWorkOrderRegistry(store)
        self.executions = self.registry.executions
        self.clock = clock or _utcnow

    def _active(self, recurring_work_order_id: str) -> RecurringWorkOrder:
        rwo = self.registry.get(recurring_work_order_id)
        if rwo.status != "active":
            raise Conflict(f"Recurring work order is {rwo.status}")
        return rwo

    def _next_number(self, rwo: RecurringWorkOrder, existing: list[Execution]) -> int:
        highest = max((e.execution_number for e in existing), default=0)
        return max(highest, rwo.total_executions) + 1

    def create_pending_executions(self, recurring_work_order_id: str) -> PendingExecutionsOut:
        rwo = self._active(recurring_work_order_id)
        if not rwo.next_service_dates:
            raise ValidationError("No service dates found for this recurring work order")

        existing = self.executions.list_for(rwo.id)
        taken = {e.scheduled_date.astimezone(timezone.utc).date() for e in existing}
        number = self._next_number(rwo, existing)

        created = 0
        skipped = 0
        errors: list[dict[str, Any]] = []
        for i, when in enumerate(sorted(rwo.next_service_dates)):
            day = when.astimezone(timezone.utc).date()
            if day in taken:
                skipped += 1
                continue
            try:
                self.executions.add(
                    recurring_work_order_id=rwo.id,
                    execution_number=number,
                    scheduled_date=when,
                    status="pending",
                )
            except EngineError as e:
                errors.append({"index": i, "date": when.isoformat(), "error": e.message})
                continue
            taken.add(day)
            number += 1
            created += 1

        logger.info(
            "planned %s pending executions for %s (%s skipped)",
            created,
            rwo.id,
            skipped,
            extra={"recurring_work_order_id": rwo.id},
        )
        return PendingExecutionsOut(total=len(rwo.next_service_dates), created=created, skipped=skipped, errors=errors)

    def initialize_execution(self, recurring_work_order_id: str, scheduled_date: datetime) -> Execution:
        rwo = self._active(recurring_work_order_id)
        if scheduled_date.tzinfo is None:
            scheduled_date = scheduled_date.replace(tzinfo=timezone.utc)

        if self.executions.find_on_day(rwo.id, scheduled_date) is not None:
            raise Conflict("Execution already exists for this date")

        existing = self.executions.list_for(rwo.id)
        execution = self.executions.add(
            recurring_work_order_id=rwo.id,
            execution_number=self._next_number(rwo, existing),
            scheduled_date=scheduled_date,
            status="pending",
        )
        logger.info(
            "initialized execution #%s for %s",
            execution.execution_number,
            rwo.id,
            extra={"recurring_work_order_id": rwo.id, "execution_id": execution.id},
        )
        return execution

    # -------------------------
    # work orders ahead of execution
    # -------------------------
    def _attach_work_order(self, rwo: RecurringWorkOrder, execution: Execution, *, suffix: Optional[str] = None) -> Execution:
        now = self.clock()
        number = generated_work_order_number(execution.execution_number, now, suffix=suffix)
        wo = self.store.add(
            WORK_ORDERS,
            documents.generated_work_order(
                rwo,
                work_order_number=number,
                execution_number=execution.execution_number,
                scheduled_date=execution.scheduled_date,
                now=now,
                execution_id=execution.id,
            ),
        )
        return self.executions.update(execution.id, {"workOrderId": wo.id, "workOrderNumber": number})

    def generate_work_order(self, execution_id: str) -> GeneratedWorkOrderOut:
        """Create the standard work order for one pending execution before it runs."""
        execution = self.executions.get(execution_id)
        if execution.work_order_id:
            raise Conflict(f"Work order already exists for this execution: {execution.work_order_id}")
        if execution.status != "pending":
            raise Conflict(f"Execution {execution_id} is already {execution.status}")
        rwo = self.registry.get(execution.recurring_work_order_id)

        updated = self._attach_work_order(rwo, execution)
        logger.info(
            "generated work order %s for execution #%s of %s",
            updated.work_order_number,
            updated.execution_number,
            rwo.id,
            extra={"recurring_work_order_id": rwo.id, "execution_id": updated.id},
        )
        return GeneratedWorkOrderOut(
            execution_id=updated.id,
            work_order_id=updated.work_order_id or "",
            work_order_number=updated.work_order_number or "",
        )

    def create_execution_work_orders(self, recurring_work_order_id: str) -> ExecutionWorkOrdersOut:
        """Work orders for every pending execution that has none yet; one failing execution does not stop the rest."""
        rwo = self.registry.get(recurring_work_order_id)
        executions = self.executions.list_for(rwo.id)

        created = 0
        skipped = 0
        errors: list[dict[str, Any]] = []
        for e in executions:
            if e.work_order_id or e.status != "pending":
                skipped += 1
                continue
            try:
                self._attach_work_order(rwo, e, suffix=e.id[-4:].upper())
            except Exception as exc:
                self.store.rollback()
                logger.exception(
                    "work order for execution %s failed",
                    e.id,
                    extra={"recurring_work_order_id": rwo.id, "execution_id": e.id},
                )
                errors.append({"executionId": e.id, "executionNumber": e.execution_number, "error": str(exc)})
                continue
            created += 1

        logger.info(
            "created %s work orders for %s executions of %s",
            created,
            len(executions),
            rwo.id,
            extra={"recurring_work_order_id": rwo.id},
        )
        return ExecutionWorkOrdersOut(total=len(executions), created=created, skipped=skipped, errors=errors)
