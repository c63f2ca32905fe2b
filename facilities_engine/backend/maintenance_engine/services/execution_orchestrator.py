# backend/maintenance_engine/services/execution_orchestrator.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..clients.document_renderer import INVOICE, WORK_ORDER, DocumentRenderer
from ..clients.notifications import Attachment, NotificationDispatcher
from ..clients.payment_links import PaymentLinkProvider
from ..config import settings
from ..domain import documents
from ..domain.numbering import generated_work_order_number, invoice_number
from ..domain.recurrence import next_date
from ..errors import Conflict, EngineError, ExternalServiceFailure, ValidationError
from ..schemas import Execution, RecurringWorkOrder
from ..store import DocumentStore
from .claims import acquire_claim, complete_claim, release_claim
from .registry import RecurringWorkOrderRegistry

logger = logging.getLogger(__name__)

WORK_ORDERS = "workOrders"

EXECUTED = "executed"
SKIPPED = "skipped"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(v: datetime) -> str:
    return v.astimezone(timezone.utc).isoformat()


def _reason(e: Exception) -> str:
    if isinstance(e, ExternalServiceFailure) and e.details and e.details != e.message:
        return f"{e.message}: {e.details}"
    if isinstance(e, EngineError):
        return e.message
    return str(e) or e.__class__.__name__


@dataclass(frozen=True)
class ExecutionResult:
    outcome: str  # executed | skipped
    message: str
    execution_id: Optional[str] = None
    next_execution: Optional[datetime] = None


@dataclass
class _Cycle:
    rwo: RecurringWorkOrder
    pending: Optional[Execution]
    scheduled_date: datetime
    execution_number: int
    now: datetime


class ExecutionOrchestrator:
    """
    Runs one cycle of a recurring work order: render the invoice and work-order
    documents, create the generated work order, obtain a payment link, record
    the Execution, notify the client and advance the schedule.

    Steps are committed one by one. A hard failure marks the Execution failed
    and is raised; already committed artifacts are left in place.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        renderer: DocumentRenderer,
        payments: PaymentLinkProvider,
        notifier: NotificationDispatcher,
        clock: Optional[Callable[[], datetime]] = None,
        registry: Optional[RecurringWorkOrderRegistry] = None,
    ) -> None:
        self.store = store
        self.registry = registry or RecurringWorkOrderRegistry(store)
        self.executions = self.registry.executions
        self.renderer = renderer
        self.payments = payments
        self.notifier = notifier
        self.clock = clock or _utcnow

    def _now(self) -> datetime:
        now = self.clock()
        return now if now.tzinfo else now.replace(tzinfo=timezone.utc)

    # -------------------------
    # entrypoint
    # -------------------------
    def execute(self, recurring_work_order_id: str, execution_id: Optional[str] = None) -> ExecutionResult:
        rwo = self.registry.get(recurring_work_order_id)

        pending: Optional[Execution] = None
        if execution_id:
            pending = self.executions.get(execution_id)
            if pending.recurring_work_order_id != rwo.id:
                raise ValidationError("Execution does not belong to this recurring work order")
            if pending.status != "pending":
                raise Conflict(f"Execution {execution_id} is already {pending.status}")

        if rwo.status != "active":
            logger.info(
                "skipping %s recurring work order %s",
                rwo.status,
                rwo.id,
                extra={"recurring_work_order_id": rwo.id},
            )
            return ExecutionResult(outcome=SKIPPED, message="Recurring work order is not active")

        now = self._now()
        if pending is not None:
            scheduled = pending.scheduled_date
            number = pending.execution_number
        else:
            scheduled = rwo.next_execution or now
            number = rwo.total_executions + 1

        owner = pending.id if pending is not None else uuid.uuid4().hex
        claimed = acquire_claim(
            self.store,
            recurring_work_order_id=rwo.id,
            scheduled_date=scheduled,
            owner=owner,
            ttl_seconds=settings.execution_claim_ttl_seconds,
            now=now,
        )
        if not claimed:
            raise Conflict("An execution for this cycle is already in progress or complete")

        cycle = _Cycle(rwo=rwo, pending=pending, scheduled_date=scheduled, execution_number=number, now=now)
        try:
            execution, pdfs = self._run(cycle)
        except Exception as e:
            reason = _reason(e)
            # a failed store write leaves the session unusable until rolled back
            self.store.rollback()
            failed_id: Optional[str] = None
            try:
                failed_id = self._record_failure(cycle, reason).id
            except Exception:
                self.store.rollback()
                logger.exception(
                    "could not record failed cycle #%s of %s",
                    number,
                    rwo.id,
                    extra={"recurring_work_order_id": rwo.id},
                )
            finally:
                release_claim(self.store, recurring_work_order_id=rwo.id, scheduled_date=scheduled, owner=owner)
            raise ExternalServiceFailure(
                "Failed to execute recurring work order",
                details=reason,
                execution_id=failed_id,
            ) from e

        complete_claim(self.store, recurring_work_order_id=rwo.id, scheduled_date=scheduled, execution_id=execution.id)

        self._notify(cycle, execution, pdfs)

        upcoming = next_date(rwo.recurrence_pattern, scheduled)
        self.registry.record_execution_outcome(
            rwo.id,
            increment_total=True,
            increment_success=True,
            last_execution=now,
            next_execution=upcoming,
        )

        logger.info(
            "executed recurring work order %s #%s, next at %s",
            rwo.id,
            number,
            _iso(upcoming),
            extra={"recurring_work_order_id": rwo.id, "execution_id": execution.id},
        )
        if upcoming < now:
            # schedule advances one cycle per run; the trigger catches up on overdue cycles
            logger.warning(
                "recurring work order %s is behind schedule: next execution %s is before this run at %s",
                rwo.id,
                _iso(upcoming),
                _iso(now),
                extra={"recurring_work_order_id": rwo.id, "execution_id": execution.id, "event": "overdue"},
            )
        return ExecutionResult(
            outcome=EXECUTED,
            message="Recurring work order executed successfully",
            execution_id=execution.id,
            next_execution=upcoming,
        )

    # -------------------------
    # cycle steps
    # -------------------------
    def _run(self, cycle: _Cycle) -> tuple[Execution, dict[str, bytes]]:
        rwo = cycle.rwo
        pending = cycle.pending

        inv_number = invoice_number(cycle.execution_number, cycle.now)
        if pending is not None and pending.work_order_number:
            wo_number = pending.work_order_number
        else:
            wo_number = generated_work_order_number(cycle.execution_number, cycle.now)

        invoice = documents.invoice_data(
            rwo,
            invoice_number=inv_number,
            execution_number=cycle.execution_number,
            scheduled_date=cycle.scheduled_date,
        )
        work_order = documents.work_order_data(
            rwo,
            work_order_number=wo_number,
            execution_number=cycle.execution_number,
            scheduled_date=cycle.scheduled_date,
        )

        pdfs = {
            INVOICE: self.renderer.render(INVOICE, invoice),
            WORK_ORDER: self.renderer.render(WORK_ORDER, work_order),
        }

        if pending is not None and pending.work_order_id:
            wo_id = pending.work_order_id
        else:
            wo_doc = self.store.add(
                WORK_ORDERS,
                documents.generated_work_order(
                    rwo,
                    work_order_number=wo_number,
                    execution_number=cycle.execution_number,
                    scheduled_date=cycle.scheduled_date,
                    now=cycle.now,
                    execution_id=pending.id if pending is not None else None,
                ),
            )
            wo_id = wo_doc.id

        link = self._payment_link(rwo, inv_number)

        fields: dict[str, Any] = {
            "status": EXECUTED,
            "executedDate": _iso(cycle.now),
            "invoiceNumber": inv_number,
            "stripePaymentLink": link,
            "workOrderId": wo_id,
            "workOrderNumber": wo_number,
            "invoiceSnapshot": invoice,
            "workOrderSnapshot": work_order,
        }
        if pending is not None:
            execution = self.executions.update(pending.id, fields)
        else:
            execution = self.executions.add(
                recurring_work_order_id=rwo.id,
                execution_number=cycle.execution_number,
                scheduled_date=cycle.scheduled_date,
                status=EXECUTED,
                fields=fields,
            )
        return execution, pdfs

    def _payment_link(self, rwo: RecurringWorkOrder, reference: str) -> str:
        try:
            return self.payments.create_link(
                amount=float(rwo.estimate_budget or 0.0),
                description=rwo.title,
                payer_email=rwo.client_email,
                payer_name=rwo.client_name,
                reference=reference,
            )
        except Exception as e:
            placeholder = f"{settings.payment_link_placeholder_base.rstrip('/')}/failed?ref={reference}"
            logger.warning(
                "payment link provider failed for %s, using placeholder: %s",
                reference,
                _reason(e),
                extra={"recurring_work_order_id": rwo.id},
            )
            return placeholder

    def _notify(self, cycle: _Cycle, execution: Execution, pdfs: dict[str, bytes]) -> None:
        rwo = cycle.rwo
        try:
            self.notifier.send(
                to=rwo.client_email,
                subject=documents.notification_subject(rwo, cycle.execution_number),
                html_body=documents.notification_html(
                    rwo,
                    execution_number=cycle.execution_number,
                    invoice_number=execution.invoice_number or "",
                    payment_link=execution.payment_link_url or "",
                    scheduled_date=cycle.scheduled_date,
                ),
                attachments=[
                    Attachment(filename=f"invoice-{execution.invoice_number}.pdf", content=pdfs[INVOICE]),
                    Attachment(filename=f"work-order-{execution.work_order_number}.pdf", content=pdfs[WORK_ORDER]),
                ],
            )
        except Exception as e:
            logger.warning(
                "notification for execution %s not delivered: %s",
                execution.id,
                _reason(e),
                extra={"recurring_work_order_id": rwo.id, "execution_id": execution.id},
            )
            return

        self.executions.update(execution.id, {"emailSent": True, "emailSentAt": _iso(self._now())})

    def _record_failure(self, cycle: _Cycle, reason: str) -> Execution:
        rwo = cycle.rwo
        logger.error(
            "recurring work order %s cycle #%s failed: %s",
            rwo.id,
            cycle.execution_number,
            reason,
            extra={"recurring_work_order_id": rwo.id},
        )

        fields = {"status": "failed", "failureReason": reason}
        if cycle.pending is not None:
            failed = self.executions.update(cycle.pending.id, fields)
        else:
            failed = self.executions.add(
                recurring_work_order_id=rwo.id,
                execution_number=cycle.execution_number,
                scheduled_date=cycle.scheduled_date,
                status="failed",
                fields={"failureReason": reason},
            )

        self.registry.record_execution_outcome(rwo.id, increment_failed=True)
        return failed

    # -------------------------
    # re-rendering
    # -------------------------
    def render_document(self, execution_id: str, kind: str) -> bytes:
        """Re-render one stored artifact of an execution from its snapshot."""
        if kind not in (INVOICE, WORK_ORDER):
            raise ValidationError(f"Unknown document kind: {kind}")
        execution = self.executions.get(execution_id)
        snapshot = execution.invoice_snapshot if kind == INVOICE else execution.work_order_snapshot
        if not snapshot:
            raise Conflict(f"Execution {execution_id} has no {kind} snapshot")
        return self.renderer.render(kind, snapshot)

    def render_documents(self, execution_id: str) -> dict[str, bytes]:
        return {kind: self.render_document(execution_id, kind) for kind in (INVOICE, WORK_ORDER)}
