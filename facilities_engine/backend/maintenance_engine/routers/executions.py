# backend/maintenance_engine/routers/executions.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from ..clients.document_renderer import INVOICE, WORK_ORDER
from ..deps import get_orchestrator, get_planner
from ..schemas import ExecuteRequest, ExecuteResponse, GeneratedWorkOrderOut
from ..services.execution_orchestrator import ExecutionOrchestrator
from ..services.execution_planner import ExecutionPlanner

router = APIRouter(tags=["executions"])


@router.post(
    "/recurring-work-orders/execute",
    response_model=ExecuteResponse,
    response_model_exclude_none=True,
)
def execute_recurring_work_order(
    payload: ExecuteRequest,
    orchestrator: ExecutionOrchestrator = Depends(get_orchestrator),
):
    result = orchestrator.execute(payload.recurring_work_order_id, payload.execution_id)
    return ExecuteResponse(
        message=result.message,
        execution_id=result.execution_id,
        next_execution=result.next_execution,
    )


def _pdf(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@router.get("/executions/{execution_id}/invoice.pdf")
def execution_invoice_pdf(
    execution_id: str,
    orchestrator: ExecutionOrchestrator = Depends(get_orchestrator),
):
    return _pdf(orchestrator.render_document(execution_id, INVOICE), f"invoice-{execution_id}.pdf")


@router.get("/executions/{execution_id}/work-order.pdf")
def execution_work_order_pdf(
    execution_id: str,
    orchestrator: ExecutionOrchestrator = Depends(get_orchestrator),
):
    return _pdf(orchestrator.render_document(execution_id, WORK_ORDER), f"work-order-{execution_id}.pdf")


@router.post("/executions/{execution_id}/work-order", response_model=GeneratedWorkOrderOut, status_code=201)
def generate_execution_work_order(
    execution_id: str,
    planner: ExecutionPlanner = Depends(get_planner),
):
    return planner.generate_work_order(execution_id)
