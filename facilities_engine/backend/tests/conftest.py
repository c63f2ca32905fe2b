# backend/tests/conftest.py
from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from maintenance_engine.db import init_db
from maintenance_engine.errors import ExternalServiceFailure
from maintenance_engine.schemas import RecurringWorkOrderCreate
from maintenance_engine.services.registry import RecurringWorkOrderRegistry
from maintenance_engine.store import DocumentStore


class FakeRenderer:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, dict]] = []

    def render(self, kind: str, data: dict[str, Any]) -> bytes:
        self.calls.append((kind, data))
        if self.fail:
            raise ExternalServiceFailure(f"Rendering {kind} failed", details="renderer down")
        return f"%PDF-{kind}-{data.get('invoiceNumber') or data.get('workOrderNumber')}".encode()


class FakePayments:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[dict] = []

    def create_link(self, *, amount, description, payer_email, payer_name, reference) -> str:
        self.calls.append(
            {
                "amount": amount,
                "description": description,
                "payer_email": payer_email,
                "payer_name": payer_name,
                "reference": reference,
            }
        )
        if self.fail:
            raise ExternalServiceFailure("Payment link request failed")
        return f"https://pay.test/{reference}"


class FakeNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[dict] = []

    def send(self, *, to, subject, html_body, attachments=()) -> None:
        if self.fail:
            raise ExternalServiceFailure("Email delivery failed")
        self.sent.append({"to": to, "subject": subject, "html_body": html_body, "attachments": list(attachments)})


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def store(db) -> DocumentStore:
    return DocumentStore(db)


@pytest.fixture()
def registry(store) -> RecurringWorkOrderRegistry:
    return RecurringWorkOrderRegistry(store)


@pytest.fixture()
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture()
def payments() -> FakePayments:
    return FakePayments()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


def mk_definition(registry: RecurringWorkOrderRegistry, **overrides):
    data: dict[str, Any] = {
        "clientId": "client-1",
        "clientName": "Jessica Cabrera-Olimon",
        "clientEmail": "jessica@example.com",
        "locationId": "loc-1",
        "locationName": "Delilah",
        "title": "Hood Cleaning - Delilah",
        "description": "Kitchen exhaust hood cleaning",
        "category": "Hood Cleaning",
        "estimateBudget": 450.0,
        "recurrencePattern": {"type": "monthly", "interval": 1},
        "nextExecution": "2024-01-15T00:00:00+00:00",
    }
    data.update(overrides)
    return registry.create(RecurringWorkOrderCreate.model_validate(data))


@pytest.fixture()
def make_definition(registry):
    def _make(**overrides):
        return mk_definition(registry, **overrides)

    return _make
