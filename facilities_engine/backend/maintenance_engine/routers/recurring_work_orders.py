# backend/maintenance_engine/routers/recurring_work_orders.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_planner, get_registry
from ..schemas import (
    Execution,
    ExecutionWorkOrdersOut,
    InitializeExecutionRequest,
    PendingExecutionsOut,
    RecurringWorkOrder,
    RecurringWorkOrderCreate,
)
from ..services.execution_planner import ExecutionPlanner
from ..services.registry import RecurringWorkOrderRegistry

router = APIRouter(prefix="/recurring-work-orders", tags=["recurring-work-orders"])


@router.post("", response_model=RecurringWorkOrder, status_code=201)
def create_recurring_work_order(
    payload: RecurringWorkOrderCreate,
    registry: RecurringWorkOrderRegistry = Depends(get_registry),
):
    return registry.create(payload)


@router.get("", response_model=list[RecurringWorkOrder])
def list_recurring_work_orders(
    status: Optional[str] = Query(default=None),
    registry: RecurringWorkOrderRegistry = Depends(get_registry),
):
    return registry.list_all(status=status)


@router.get("/{recurring_work_order_id}", response_model=RecurringWorkOrder)
def get_recurring_work_order(
    recurring_work_order_id: str,
    registry: RecurringWorkOrderRegistry = Depends(get_registry),
):
    return registry.get(recurring_work_order_id)


@router.delete("/{recurring_work_order_id}")
def delete_recurring_work_order(
    recurring_work_order_id: str,
    registry: RecurringWorkOrderRegistry = Depends(get_registry),
):
    removed = registry.delete(recurring_work_order_id)
    return {"ok": True, "deletedExecutions": removed}


@router.post("/{recurring_work_order_id}/pause", response_model=RecurringWorkOrder)
def pause_recurring_work_order(
    recurring_work_order_id: str,
    registry: RecurringWorkOrderRegistry = Depends(get_registry),
):
    return registry.pause(recurring_work_order_id)


@router.post("/{recurring_work_order_id}/resume", response_model=RecurringWorkOrder)
def resume_recurring_work_order(
    recurring_work_order_id: str,
    registry: RecurringWorkOrderRegistry = Depends(get_registry),
):
    return registry.resume(recurring_work_order_id)


@router.post("/{recurring_work_order_id}/cancel", response_model=RecurringWorkOrder)
def cancel_recurring_work_order(
    recurring_work_order_id: str,
    registry: RecurringWorkOrderRegistry = Depends(get_registry),
):
    return registry.cancel(recurring_work_order_id)


@router.get("/{recurring_work_order_id}/executions", response_model=list[Execution])
def list_executions(
    recurring_work_order_id: str,
    registry: RecurringWorkOrderRegistry = Depends(get_registry),
):
    return registry.list_executions(recurring_work_order_id)


@router.post("/{recurring_work_order_id}/executions/pending", response_model=PendingExecutionsOut)
def create_pending_executions(
    recurring_work_order_id: str,
    planner: ExecutionPlanner = Depends(get_planner),
):
    return planner.create_pending_executions(recurring_work_order_id)


@router.post("/{recurring_work_order_id}/executions/initialize", response_model=Execution, status_code=201)
def initialize_execution(
    recurring_work_order_id: str,
    payload: InitializeExecutionRequest,
    planner: ExecutionPlanner = Depends(get_planner),
):
    return planner.initialize_execution(recurring_work_order_id, payload.scheduled_date)


@router.post("/{recurring_work_order_id}/executions/work-orders", response_model=ExecutionWorkOrdersOut)
def create_execution_work_orders(
    recurring_work_order_id: str,
    planner: ExecutionPlanner = Depends(get_planner),
):
    return planner.create_execution_work_orders(recurring_work_order_id)
