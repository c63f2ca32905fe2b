# backend/maintenance_engine/services/import_reconciler.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from ..config import settings
from ..domain.importers.base import parse_service_date
from ..domain.numbering import recurring_work_order_number
from ..domain.recurrence import map_frequency, next_date
from ..errors import EngineError, NotFound, ValidationError
from ..schemas import (
    ImportErrorRow,
    ImportResultOut,
    ImportRow,
    InvoiceSchedule,
    RecurringWorkOrderCreate,
)
from ..store import DocumentStore, StoredDocument
from .location_mappings import LocationMappingRegistry
from .registry import RecurringWorkOrderRegistry

logger = logging.getLogger(__name__)

COMPANIES = "companies"
CLIENTS = "clients"
LOCATIONS = "locations"
CATEGORIES = "categories"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_address(address: Any) -> str:
    if isinstance(address, dict):
        parts = [str(address.get(k) or "").strip() for k in ("street", "city", "state")]
        joined = ", ".join(p for p in parts if p)
        return joined or "N/A"
    if isinstance(address, str) and address.strip():
        return address.strip()
    return "N/A"


class ImportReconciler:
    """
    Bulk-creates recurring work orders from spreadsheet rows.

    Rows are independent: a bad row lands in ``errors`` with its 1-based
    index and the rest of the batch carries on. Missing default company or
    client rejects the batch before any row is read.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        company_name: Optional[str] = None,
        client_name: Optional[str] = None,
    ) -> None:
        self.store = store
        self.registry = RecurringWorkOrderRegistry(store)
        self.mappings = LocationMappingRegistry(store)
        self.clock = clock or _utcnow
        self.company_name = company_name or settings.import_default_company_name
        self.client_name = client_name or settings.import_default_client_name

    def import_batch(self, rows: Sequence[ImportRow], *, admin_id: str) -> ImportResultOut:
        if not rows:
            raise ValidationError("No rows provided")

        company = self.store.first(COMPANIES, name=self.company_name)
        if company is None:
            raise ValidationError(f'Default company "{self.company_name}" not found. Please create it first.')
        client = self.store.first(CLIENTS, fullName=self.client_name)
        if client is None:
            raise ValidationError(f'Default client "{self.client_name}" not found. Please create it first.')

        created = 0
        errors: list[ImportErrorRow] = []
        for idx, row in enumerate(rows, start=1):
            try:
                self._import_row(idx, row, company=company, client=client, admin_id=admin_id)
                created += 1
            except EngineError as e:
                errors.append(ImportErrorRow(row=idx, error=e.message))
            except Exception as e:
                self.store.rollback()
                logger.exception("import row %s failed", idx, extra={"row": idx})
                errors.append(ImportErrorRow(row=idx, error=str(e) or e.__class__.__name__))

        logger.info("import by %s: %s created, %s errors", admin_id, created, len(errors))
        return ImportResultOut(success=True, created=created, errors=errors)

    def _import_row(
        self,
        idx: int,
        row: ImportRow,
        *,
        company: StoredDocument,
        client: StoredDocument,
        admin_id: str,
    ) -> str:
        restaurant = row.restaurant.strip()
        service_type = row.service_type.strip()
        if not restaurant:
            raise ValidationError("RESTAURANT is required")
        if not service_type:
            raise ValidationError("SERVICE TYPE is required")

        mapping = self.mappings.resolve(restaurant)
        if mapping is None:
            raise NotFound(f'Location mapping not found for "{restaurant}". Please create a mapping first.')

        location = self.store.get(LOCATIONS, mapping.system_location_id)
        if location is None:
            raise NotFound(f'Location with ID "{mapping.system_location_id}" not found in system.')

        category_id = self._get_or_create_category(service_type)

        last_serviced = parse_service_date(row.last_serviced)
        next_dates = [d for d in (parse_service_date(v) for v in row.next_service_dates) if d is not None]

        pattern = map_frequency(row.frequency_label)
        if row.scheduling.strip():
            pattern.scheduling = row.scheduling.strip()

        now = self.clock()
        next_execution = min(next_dates) if next_dates else next_date(pattern, now)

        location_name = str(location.data.get("locationName") or mapping.system_location_name or restaurant)
        notes = row.notes.strip()

        rwo = self.registry.create(
            RecurringWorkOrderCreate(
                work_order_number=recurring_work_order_number(row_index=idx, now=now),
                client_id=client.id,
                client_name=str(client.data.get("fullName") or ""),
                client_email=str(client.data.get("email") or ""),
                company_id=company.id,
                company_name=str(company.data.get("name") or ""),
                location_id=location.id,
                location_name=location_name,
                location_address=format_address(location.data.get("address")),
                title=f"{service_type} - {location_name}",
                description=notes or f"{service_type} recurring service",
                category=service_type,
                category_id=category_id,
                priority="medium",
                recurrence_pattern=pattern,
                invoice_schedule=InvoiceSchedule(
                    type="monthly",
                    interval=1,
                    time=settings.import_invoice_time,
                    timezone=settings.import_invoice_timezone,
                ),
                next_execution=next_execution,
                last_serviced=last_serviced,
                next_service_dates=next_dates,
                notes=notes or None,
                created_by=admin_id,
            )
        )
        return rwo.id

    def _get_or_create_category(self, name: str) -> str:
        existing = self.store.first(CATEGORIES, name=name)
        if existing is not None:
            return existing.id
        doc = self.store.add(CATEGORIES, {"name": name, "createdAt": self.clock().isoformat()})
        logger.info("created category %r", name)
        return doc.id
