# backend/maintenance_engine/schemas.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .domain.recurrence import RecurrencePattern
from .errors import MalformedDocument
from .store import StoredDocument


def _as_utc(v: datetime) -> datetime:
    # stored timestamps without an offset are UTC
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]

DefinitionStatus = Literal["active", "paused", "cancelled"]
ExecutionStatus = Literal["pending", "executed", "failed"]
Priority = Literal["low", "medium", "high"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StoredEntity(CamelModel):
    """Entity read from / written to a document collection (extra fields survive round-trips)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    # store metadata, never persisted inside the body
    version: int = Field(default=0, exclude=True)

    def to_document(self) -> dict[str, Any]:
        body = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        body.pop("id", None)
        return body


E = TypeVar("E", bound=StoredEntity)


def from_document(model: type[E], collection: str, doc: StoredDocument) -> E:
    """Validate a stored document at the read boundary."""
    try:
        return model.model_validate({**doc.data, "id": doc.id, "version": doc.version})
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise MalformedDocument(collection, doc.id, f"{loc}: {first.get('msg', 'invalid')}")


# -------------------- Recurring work orders --------------------

class InvoiceSchedule(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: str = "monthly"
    interval: int = Field(default=1, ge=1)
    time: str = "09:00"
    timezone: str = "America/New_York"


class RecurringWorkOrder(StoredEntity):
    work_order_number: str = ""

    client_id: str
    client_name: str = ""
    client_email: str = ""
    company_id: Optional[str] = None
    company_name: Optional[str] = None
    location_id: str
    location_name: Optional[str] = None
    location_address: Optional[str] = None

    title: str
    description: str = ""
    category: str = ""
    category_id: Optional[str] = None
    priority: Priority = "medium"
    estimate_budget: Optional[float] = Field(default=None, ge=0)

    subcontractor_id: Optional[str] = None
    subcontractor_name: Optional[str] = None
    subcontractor_email: Optional[str] = None

    status: DefinitionStatus = "active"
    recurrence_pattern: RecurrencePattern
    invoice_schedule: Optional[InvoiceSchedule] = None

    next_execution: Optional[UtcDatetime] = None
    last_execution: Optional[UtcDatetime] = None
    last_serviced: Optional[UtcDatetime] = None
    next_service_dates: list[UtcDatetime] = Field(default_factory=list)

    total_executions: int = Field(default=0, ge=0)
    successful_executions: int = Field(default=0, ge=0)
    failed_executions: int = Field(default=0, ge=0)

    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None


class RecurringWorkOrderCreate(CamelModel):
    work_order_number: Optional[str] = None
    client_id: str
    client_name: str = ""
    client_email: str = ""
    company_id: Optional[str] = None
    company_name: Optional[str] = None
    location_id: str
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    title: str = Field(min_length=1)
    description: str = ""
    category: str = ""
    category_id: Optional[str] = None
    priority: Priority = "medium"
    estimate_budget: Optional[float] = Field(default=None, ge=0)
    subcontractor_id: Optional[str] = None
    subcontractor_name: Optional[str] = None
    subcontractor_email: Optional[str] = None
    recurrence_pattern: RecurrencePattern
    invoice_schedule: Optional[InvoiceSchedule] = None
    next_execution: Optional[UtcDatetime] = None
    last_serviced: Optional[UtcDatetime] = None
    next_service_dates: list[UtcDatetime] = Field(default_factory=list)
    notes: Optional[str] = None
    created_by: Optional[str] = None


# -------------------- Executions --------------------

class Execution(StoredEntity):
    recurring_work_order_id: str
    execution_number: int = Field(ge=1)
    status: ExecutionStatus = "pending"
    scheduled_date: UtcDatetime
    executed_date: Optional[UtcDatetime] = None

    invoice_number: Optional[str] = None
    stripe_payment_link: Optional[str] = None
    work_order_id: Optional[str] = None
    work_order_number: Optional[str] = None

    email_sent: bool = False
    email_sent_at: Optional[UtcDatetime] = None
    failure_reason: Optional[str] = None

    invoice_snapshot: Optional[dict[str, Any]] = None
    work_order_snapshot: Optional[dict[str, Any]] = None

    created_at: Optional[UtcDatetime] = None
    updated_at: Optional[UtcDatetime] = None

    @property
    def payment_link_url(self) -> Optional[str]:
        return self.stripe_payment_link


class ExecuteRequest(CamelModel):
    recurring_work_order_id: str = Field(min_length=1)
    execution_id: Optional[str] = None


class ExecuteResponse(CamelModel):
    message: str
    execution_id: Optional[str] = None
    next_execution: Optional[datetime] = None


class InitializeExecutionRequest(CamelModel):
    scheduled_date: UtcDatetime


class PendingExecutionsOut(CamelModel):
    total: int
    created: int
    skipped: int
    errors: list[dict[str, Any]] = Field(default_factory=list)


class ExecutionWorkOrdersOut(PendingExecutionsOut):
    pass


class GeneratedWorkOrderOut(CamelModel):
    execution_id: str
    work_order_id: str
    work_order_number: str


# -------------------- Location mappings --------------------

class LocationMapping(StoredEntity):
    csv_location_name: str
    system_location_id: str
    system_location_name: str = ""
    created_at: Optional[UtcDatetime] = None


class LocationMappingCreate(CamelModel):
    csv_location_name: str = Field(min_length=1)
    system_location_id: str = Field(min_length=1)


# -------------------- Imports --------------------

def _cell_text(v: Any) -> str:
    # spreadsheet cells arrive as null, numbers or text; a bad cell becomes a row error later
    if v is None or isinstance(v, (dict, list, tuple, set)):
        return ""
    return v if isinstance(v, str) else str(v)


def _cell_list(v: Any) -> list[str]:
    if v is None:
        return []
    if isinstance(v, (list, tuple)):
        return [t for t in (_cell_text(x) for x in v) if t.strip()]
    t = _cell_text(v)
    return [t] if t.strip() else []


def _row_object(v: Any) -> Any:
    # a row that is not an object is imported as an empty row and reported on its own
    return v if isinstance(v, (dict, BaseModel)) else {}


CellText = Annotated[str, BeforeValidator(_cell_text)]
CellList = Annotated[list[str], BeforeValidator(_cell_list)]


class ImportRow(CamelModel):
    restaurant: CellText = ""
    service_type: CellText = ""
    last_serviced: CellText = ""
    next_service_dates: CellList = Field(default_factory=list)
    frequency_label: CellText = ""
    scheduling: CellText = ""
    notes: CellText = ""


class ImportRequest(CamelModel):
    rows: list[Annotated[ImportRow, BeforeValidator(_row_object)]] = Field(default_factory=list)


class ImportErrorRow(BaseModel):
    row: int
    error: str


class ImportResultOut(BaseModel):
    success: bool = True
    created: int
    errors: list[ImportErrorRow]
