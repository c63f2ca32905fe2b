# backend/maintenance_engine/services/registry.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from ..config import settings
from ..domain.numbering import recurring_work_order_number
from ..errors import Conflict, NotFound, ValidationError
from ..schemas import RecurringWorkOrder, RecurringWorkOrderCreate, from_document
from ..store import DocumentStore, VersionConflict
from .claims import COLLECTION as CLAIMS_COLLECTION
from .executions import ExecutionRepository

logger = logging.getLogger(__name__)

COLLECTION = "recurringWorkOrders"

# -----------------------------------------------------------------------------
# Status state machine
#   active <-> paused
#   active | paused -> cancelled (terminal)
# -----------------------------------------------------------------------------
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "active": frozenset({"paused", "cancelled"}),
    "paused": frozenset({"active", "cancelled"}),
    "cancelled": frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(v: datetime) -> str:
    return v.astimezone(timezone.utc).isoformat()


class RecurringWorkOrderRegistry:
    def __init__(self, store: DocumentStore, *, counter_retries: Optional[int] = None) -> None:
        self.store = store
        self.executions = ExecutionRepository(store)
        self.counter_retries = int(counter_retries or settings.counter_update_retries)

    # -------------------------
    # CRUD
    # -------------------------
    def create(self, data: RecurringWorkOrderCreate) -> RecurringWorkOrder:
        now = _utcnow()
        body = data.model_dump(mode="json", by_alias=True, exclude_none=True)

        if not body.get("workOrderNumber"):
            body["workOrderNumber"] = recurring_work_order_number(now=now)
        if not body.get("nextExecution") and data.next_service_dates:
            body["nextExecution"] = _iso(min(data.next_service_dates))

        body.update(
            {
                "status": "active",
                "totalExecutions": 0,
                "successfulExecutions": 0,
                "failedExecutions": 0,
                "createdAt": _iso(now),
                "updatedAt": _iso(now),
            }
        )
        doc = self.store.add(COLLECTION, body)
        logger.info(
            "created recurring work order %s (%s)",
            doc.id,
            body["workOrderNumber"],
            extra={"recurring_work_order_id": doc.id},
        )
        return from_document(RecurringWorkOrder, COLLECTION, doc)

    def get(self, recurring_work_order_id: str) -> RecurringWorkOrder:
        doc = self.store.get(COLLECTION, recurring_work_order_id)
        if doc is None:
            raise NotFound("Recurring work order not found")
        return from_document(RecurringWorkOrder, COLLECTION, doc)

    def list_all(self, status: Optional[str] = None) -> list[RecurringWorkOrder]:
        filters: dict[str, Any] = {"status": status} if status else {}
        return [from_document(RecurringWorkOrder, COLLECTION, d) for d in self.store.query(COLLECTION, **filters)]

    def delete(self, recurring_work_order_id: str) -> int:
        """Delete the definition with its executions and claims. Returns the number of executions removed."""
        self.get(recurring_work_order_id)

        removed = self.executions.delete_for(recurring_work_order_id)
        self.store.delete_where(CLAIMS_COLLECTION, recurringWorkOrderId=recurring_work_order_id)
        self.store.delete(COLLECTION, recurring_work_order_id)

        logger.info(
            "deleted recurring work order %s with %s executions",
            recurring_work_order_id,
            removed,
            extra={"recurring_work_order_id": recurring_work_order_id},
        )
        return removed

    def list_executions(self, recurring_work_order_id: str):
        self.get(recurring_work_order_id)
        return self.executions.list_for(recurring_work_order_id)

    # -------------------------
    # status transitions
    # -------------------------
    def set_status(self, recurring_work_order_id: str, new_status: str) -> RecurringWorkOrder:
        if new_status not in ALLOWED_TRANSITIONS:
            raise ValidationError(f"Unknown status: {new_status}")

        rwo = self.get(recurring_work_order_id)
        if rwo.status == new_status:
            return rwo
        if new_status not in ALLOWED_TRANSITIONS[rwo.status]:
            raise Conflict(f"Cannot change status from {rwo.status} to {new_status}")

        try:
            doc = self.store.update(
                COLLECTION,
                recurring_work_order_id,
                {"status": new_status, "updatedAt": _iso(_utcnow())},
                expected_version=rwo.version,
            )
        except VersionConflict:
            raise Conflict("Recurring work order changed while updating status; retry")

        logger.info(
            "recurring work order %s: %s -> %s",
            recurring_work_order_id,
            rwo.status,
            new_status,
            extra={"recurring_work_order_id": recurring_work_order_id},
        )
        return from_document(RecurringWorkOrder, COLLECTION, doc)

    def pause(self, recurring_work_order_id: str) -> RecurringWorkOrder:
        return self.set_status(recurring_work_order_id, "paused")

    def resume(self, recurring_work_order_id: str) -> RecurringWorkOrder:
        return self.set_status(recurring_work_order_id, "active")

    def cancel(self, recurring_work_order_id: str) -> RecurringWorkOrder:
        return self.set_status(recurring_work_order_id, "cancelled")

    # -------------------------
    # execution bookkeeping
    # -------------------------
    def record_execution_outcome(
        self,
        recurring_work_order_id: str,
        *,
        increment_total: bool = False,
        increment_success: bool = False,
        increment_failed: bool = False,
        last_execution: Optional[datetime] = None,
        next_execution: Optional[datetime] = None,
    ) -> RecurringWorkOrder:
        """
        Version-checked read-modify-write of the counters and execution dates.

        Concurrent writers re-read and re-apply their increments instead of
        overwriting each other.
        """
        for attempt in range(1, self.counter_retries + 1):
            rwo = self.get(recurring_work_order_id)

            changes: dict[str, Any] = {"updatedAt": _iso(_utcnow())}
            if increment_total:
                changes["totalExecutions"] = rwo.total_executions + 1
            if increment_success:
                changes["successfulExecutions"] = rwo.successful_executions + 1
            if increment_failed:
                changes["failedExecutions"] = rwo.failed_executions + 1

            if last_execution is not None:
                changes["lastExecution"] = _iso(last_execution)
            if next_execution is not None:
                changes["nextExecution"] = _iso(next_execution)

            try:
                doc = self.store.update(COLLECTION, recurring_work_order_id, changes, expected_version=rwo.version)
                return from_document(RecurringWorkOrder, COLLECTION, doc)
            except VersionConflict:
                logger.warning(
                    "counter update raced on %s (attempt %s/%s)",
                    recurring_work_order_id,
                    attempt,
                    self.counter_retries,
                    extra={"recurring_work_order_id": recurring_work_order_id},
                )

        raise Conflict("Recurring work order is being updated concurrently; counters not recorded")
