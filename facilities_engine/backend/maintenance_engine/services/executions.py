# backend/maintenance_engine/services/executions.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from ..errors import NotFound
from ..schemas import Execution, from_document
from ..store import DocumentStore

COLLECTION = "recurringWorkOrderExecutions"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(v: datetime) -> str:
    return v.astimezone(timezone.utc).isoformat()


class ExecutionRepository:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def get(self, execution_id: str) -> Execution:
        doc = self.store.get(COLLECTION, execution_id)
        if doc is None:
            raise NotFound(f"Execution {execution_id} not found")
        return from_document(Execution, COLLECTION, doc)

    def list_for(self, recurring_work_order_id: str) -> list[Execution]:
        docs = self.store.query(COLLECTION, recurringWorkOrderId=recurring_work_order_id)
        out = [from_document(Execution, COLLECTION, d) for d in docs]
        return sorted(out, key=lambda e: e.execution_number)

    def find_on_day(self, recurring_work_order_id: str, day: datetime) -> Optional[Execution]:
        target = day.astimezone(timezone.utc).date()
        for e in self.list_for(recurring_work_order_id):
            if e.scheduled_date.date() == target:
                return e
        return None

    def add(
        self,
        *,
        recurring_work_order_id: str,
        execution_number: int,
        scheduled_date: datetime,
        status: str,
        fields: Optional[dict[str, Any]] = None,
    ) -> Execution:
        now = _utcnow()
        body: dict[str, Any] = {
            "recurringWorkOrderId": recurring_work_order_id,
            "executionNumber": int(execution_number),
            "scheduledDate": _iso(scheduled_date),
            "status": status,
            "emailSent": False,
            "createdAt": _iso(now),
            "updatedAt": _iso(now),
        }
        body.update(fields or {})
        doc = self.store.add(COLLECTION, body)
        return from_document(Execution, COLLECTION, doc)

    def update(self, execution_id: str, changes: dict[str, Any]) -> Execution:
        payload = dict(changes)
        payload["updatedAt"] = _iso(_utcnow())
        doc = self.store.update(COLLECTION, execution_id, payload)
        return from_document(Execution, COLLECTION, doc)

    def delete_for(self, recurring_work_order_id: str) -> int:
        return self.store.delete_where(COLLECTION, recurringWorkOrderId=recurring_work_order_id)
