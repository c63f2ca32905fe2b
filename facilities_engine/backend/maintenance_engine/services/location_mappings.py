# backend/maintenance_engine/services/location_mappings.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from ..domain.keys import document_key
from ..errors import Conflict, NotFound, ValidationError
from ..schemas import LocationMapping, from_document
from ..store import DocumentStore, DuplicateDocument

logger = logging.getLogger(__name__)

COLLECTION = "locationMappings"
LOCATIONS = "locations"


def mapping_key(csv_location_name: str) -> str:
    # labels are matched exactly; the key makes the label unique at the store level
    return document_key("location-mapping", csv_location_name)


class LocationMappingRegistry:
    """Translates free-text location labels from imported spreadsheets to location ids."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def create(self, csv_location_name: str, system_location_id: str) -> LocationMapping:
        label = (csv_location_name or "").strip()
        if not label:
            raise ValidationError("csvLocationName is required")

        location = self.store.get(LOCATIONS, system_location_id)
        if location is None:
            raise NotFound(f'Location with ID "{system_location_id}" not found')

        body = {
            "csvLocationName": label,
            "systemLocationId": system_location_id,
            "systemLocationName": str(location.data.get("locationName") or ""),
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            doc = self.store.create(COLLECTION, mapping_key(label), body)
        except DuplicateDocument:
            raise Conflict(f'A mapping for "{label}" already exists')

        logger.info("mapped location label %r -> %s", label, system_location_id)
        return from_document(LocationMapping, COLLECTION, doc)

    def resolve(self, label: str) -> Optional[LocationMapping]:
        doc = self.store.get(COLLECTION, mapping_key((label or "").strip()))
        return from_document(LocationMapping, COLLECTION, doc) if doc is not None else None

    def list_all(self) -> list[LocationMapping]:
        out = [from_document(LocationMapping, COLLECTION, d) for d in self.store.query(COLLECTION)]
        return sorted(out, key=lambda m: m.csv_location_name.casefold())

    def delete(self, mapping_id: str) -> None:
        if not self.store.delete(COLLECTION, mapping_id):
            raise NotFound("Location mapping not found")
