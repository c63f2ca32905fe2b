# backend/tests/test_location_mappings.py
from __future__ import annotations

import pytest

from maintenance_engine.errors import Conflict, NotFound
from maintenance_engine.services.location_mappings import LocationMappingRegistry


def test_create_and_resolve(store):
    loc = store.add("locations", {"locationName": "Delilah West Hollywood"})
    mappings = LocationMappingRegistry(store)

    m = mappings.create("  DELILAH  ", loc.id)
    assert m.csv_location_name == "DELILAH"
    assert m.system_location_id == loc.id
    assert m.system_location_name == "Delilah West Hollywood"

    assert mappings.resolve("DELILAH").id == m.id
    assert mappings.resolve("Delilah") is None  # exact match only
    assert [x.id for x in mappings.list_all()] == [m.id]


def test_duplicate_label(store):
    loc = store.add("locations", {"locationName": "Delilah"})
    mappings = LocationMappingRegistry(store)
    mappings.create("DELILAH", loc.id)
    with pytest.raises(Conflict):
        mappings.create("DELILAH", loc.id)


def test_unknown_location(store):
    with pytest.raises(NotFound):
        LocationMappingRegistry(store).create("DELILAH", "missing")


def test_delete(store):
    loc = store.add("locations", {"locationName": "Delilah"})
    mappings = LocationMappingRegistry(store)
    m = mappings.create("DELILAH", loc.id)

    mappings.delete(m.id)
    assert mappings.resolve("DELILAH") is None
    with pytest.raises(NotFound):
        mappings.delete(m.id)
