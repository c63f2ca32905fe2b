# backend/maintenance_engine/routers/imports.py
from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile

from ..deps import get_import_reconciler, require_admin
from ..domain.importers.schedule_csv import normalize_schedule_csv
from ..schemas import ImportRequest, ImportResultOut
from ..services.import_reconciler import ImportReconciler

router = APIRouter(prefix="/recurring-work-orders/import", tags=["import"])


@router.post("", response_model=ImportResultOut)
def import_rows(
    payload: ImportRequest,
    admin_id: str = Depends(require_admin),
    reconciler: ImportReconciler = Depends(get_import_reconciler),
):
    return reconciler.import_batch(payload.rows, admin_id=admin_id)


@router.post("/csv", response_model=ImportResultOut)
def import_csv(
    file: UploadFile = File(...),
    admin_id: str = Depends(require_admin),
    reconciler: ImportReconciler = Depends(get_import_reconciler),
):
    rows = normalize_schedule_csv(file.file.read())
    return reconciler.import_batch(rows, admin_id=admin_id)
