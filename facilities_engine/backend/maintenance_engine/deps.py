# backend/maintenance_engine/deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .auth import AdminVerifier, JwtAdminVerifier
from .clients.document_renderer import DocumentRenderer, HttpDocumentRenderer
from .clients.notifications import NotificationDispatcher, SendGridDispatcher
from .clients.payment_links import PaymentLinkProvider, StripeCheckoutClient
from .db import get_db
from .errors import Forbidden, Unauthorized
from .services.execution_orchestrator import ExecutionOrchestrator
from .services.execution_planner import ExecutionPlanner
from .services.import_reconciler import ImportReconciler
from .services.location_mappings import LocationMappingRegistry
from .services.registry import RecurringWorkOrderRegistry
from .store import DocumentStore


def get_store(db: Session = Depends(get_db)) -> DocumentStore:
    return DocumentStore(db)


def get_registry(store: DocumentStore = Depends(get_store)) -> RecurringWorkOrderRegistry:
    return RecurringWorkOrderRegistry(store)


def get_renderer() -> DocumentRenderer:
    return HttpDocumentRenderer()


def get_payment_provider() -> PaymentLinkProvider:
    return StripeCheckoutClient()


def get_notifier() -> NotificationDispatcher:
    return SendGridDispatcher()


def get_orchestrator(
    store: DocumentStore = Depends(get_store),
    renderer: DocumentRenderer = Depends(get_renderer),
    payments: PaymentLinkProvider = Depends(get_payment_provider),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(store, renderer=renderer, payments=payments, notifier=notifier)


def get_planner(store: DocumentStore = Depends(get_store)) -> ExecutionPlanner:
    return ExecutionPlanner(store)


def get_import_reconciler(store: DocumentStore = Depends(get_store)) -> ImportReconciler:
    return ImportReconciler(store)


def get_location_mappings(store: DocumentStore = Depends(get_store)) -> LocationMappingRegistry:
    return LocationMappingRegistry(store)


def get_admin_verifier(store: DocumentStore = Depends(get_store)) -> AdminVerifier:
    return JwtAdminVerifier(store)


def require_admin(
    authorization: Optional[str] = Header(default=None),
    verifier: AdminVerifier = Depends(get_admin_verifier),
) -> str:
    """Admin id from ``Authorization: Bearer <token>``; 401 without a bearer token, 403 for non-admins."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized("Unauthorized")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise Unauthorized("Unauthorized")

    admin_id = verifier.verify_admin(token)
    if not admin_id:
        raise Forbidden("Only admins can import recurring work orders")
    return admin_id
