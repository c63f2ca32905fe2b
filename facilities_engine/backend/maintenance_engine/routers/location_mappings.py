# backend/maintenance_engine/routers/location_mappings.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps import get_location_mappings
from ..schemas import LocationMapping, LocationMappingCreate
from ..services.location_mappings import LocationMappingRegistry

router = APIRouter(prefix="/location-mappings", tags=["location-mappings"])


@router.get("", response_model=list[LocationMapping])
def list_location_mappings(mappings: LocationMappingRegistry = Depends(get_location_mappings)):
    return mappings.list_all()


@router.post("", response_model=LocationMapping, status_code=201)
def create_location_mapping(
    payload: LocationMappingCreate,
    mappings: LocationMappingRegistry = Depends(get_location_mappings),
):
    return mappings.create(payload.csv_location_name, payload.system_location_id)


@router.delete("/{mapping_id}")
def delete_location_mapping(mapping_id: str, mappings: LocationMappingRegistry = Depends(get_location_mappings)):
    mappings.delete(mapping_id)
    return {"ok": True}
