# backend/maintenance_engine/cli/seed_defaults.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..auth import issue_admin_token
from ..config import settings
from ..db import session_scope
from ..errors import Conflict
from ..services.location_mappings import LocationMappingRegistry
from ..store import DocumentStore, DuplicateDocument, StoredDocument


@dataclass(frozen=True)
class SeedResult:
    company_id: str
    client_id: str
    admin_id: str
    admin_token: str
    location_id: Optional[str]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _get_or_create(store: DocumentStore, collection: str, match: dict, body: dict) -> StoredDocument:
    row = store.first(collection, **match)
    if row:
        return row
    return store.add(collection, {**body, **match, "createdAt": _now()})


def _ensure_admin(store: DocumentStore, admin_id: str, email: str) -> None:
    if store.get(settings.admin_collection, admin_id) is not None:
        return
    try:
        store.create(settings.admin_collection, admin_id, {"email": email, "role": "admin", "createdAt": _now()})
    except DuplicateDocument:
        pass


def seed_defaults(
    *,
    admin_id: str = "admin",
    admin_email: str = "admin@maintenance.local",
    client_email: str = "billing@maintenance.local",
    sample_location: Optional[str] = None,
) -> SeedResult:
    """Reference data the import needs: default company and client, an admin user, optionally one mapped location."""
    with session_scope() as db:
        store = DocumentStore(db)

        company = _get_or_create(store, "companies", {"name": settings.import_default_company_name}, {})
        client = _get_or_create(
            store,
            "clients",
            {"fullName": settings.import_default_client_name},
            {"email": client_email, "companyId": company.id},
        )
        _ensure_admin(store, admin_id, admin_email)

        location_id: Optional[str] = None
        if sample_location:
            location = _get_or_create(
                store,
                "locations",
                {"locationName": sample_location},
                {"companyId": company.id, "address": {"street": "", "city": "", "state": ""}},
            )
            location_id = location.id
            try:
                LocationMappingRegistry(store).create(sample_location, location.id)
            except Conflict:
                pass

        return SeedResult(
            company_id=company.id,
            client_id=client.id,
            admin_id=admin_id,
            admin_token=issue_admin_token(admin_id),
            location_id=location_id,
        )
