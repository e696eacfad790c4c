from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Response
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.core_types import stage_for_status
from backend.app.db.models.models_v1 import JOB_ID_MAX_LENGTH, InventoryItem
from backend.app.schemas.cost_sheet import (
    CostSheetRead,
    CostSheetSave,
    DraftLines,
    FailedAdjustmentRead,
    LineAdd,
    LineEdit,
    LineRemove,
    ReconciliationRead,
)
from backend.services.costing import add_line, apply_line_edit, calculate_total_cost, remove_line
from backend.services.documents import render_cost_sheet_pdf
from backend.services.errors import CostSheetValidationError, SheetPersistenceError, StoreError
from backend.services.inventory import (
    ReconciliationResult,
    delete_cost_sheet,
    rededuct_stock,
    save_cost_sheet,
    pending_consumption,
    sheet_lines,
)
from backend.services.stores import SqlCostSheetStore, get_or_default

router = APIRouter(prefix="/cost-sheets")

# même borne que la colonne : un job_id trop long échouerait après les écritures stock
JobId = Annotated[str, Path(min_length=1, max_length=JOB_ID_MAX_LENGTH)]


# ---------- Helpers ----------
def _load_sheet(db: Session, job_id: str):
    try:
        return get_or_default(SqlCostSheetStore(db), job_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Error fetching cost sheet: {e}")


def _reconciliation_out(result: ReconciliationResult) -> ReconciliationRead:
    return ReconciliationRead(
        job_id=result.job_id,
        applied=result.applied,
        failed=[
            FailedAdjustmentRead(
                inventory_id=f.inventory_id,
                description=f.description,
                diff=f.diff,
                reason=f.reason,
            )
            for f in result.failed
        ],
        status=result.status,
        total_cost=result.total_cost,
        sheet_removed=result.sheet_removed,
    )


def _draft_out(items) -> DraftLines:
    return DraftLines(items=items, total_cost=calculate_total_cost(items))


# ---------- Endpoints ----------
@router.get("/{job_id}", response_model=CostSheetRead)
def get_cost_sheet(job_id: JobId, db: Session = Depends(get_db)):
    """
    Feuille du job (vide "Issued" si jamais sauvegardée).
    total_cost recalculé : la valeur stockée n'est qu'un cache.
    """
    sheet, persisted = _load_sheet(db, job_id)
    items = sheet_lines(sheet)
    return CostSheetRead(
        job_id=job_id,
        items=items,
        status=sheet.status,
        stage=stage_for_status(sheet.status),
        total_cost=calculate_total_cost(items),
        persisted=persisted,
        pending_consumption=pending_consumption(sheet) if persisted else {},
        pending_reversal=bool(persisted and sheet.pending_deletion),
    )


@router.put("/{job_id}", response_model=ReconciliationRead)
def save_sheet(job_id: JobId, payload: CostSheetSave, db: Session = Depends(get_db)):
    try:
        result = save_cost_sheet(db, job_id=job_id, items=payload.items, stage=payload.stage)
    except CostSheetValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SheetPersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Error saving sheet: {e}")
    return _reconciliation_out(result)


@router.post("/{job_id}/rededuct", response_model=ReconciliationRead)
def rededuct_sheet(job_id: JobId, payload: CostSheetSave, db: Session = Depends(get_db)):
    """Reprise si une déduction précédente n'a pas abouti : rejouable sans double comptage."""
    try:
        result = rededuct_stock(db, job_id=job_id, items=payload.items, stage=payload.stage)
    except CostSheetValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SheetPersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Error saving sheet: {e}")
    return _reconciliation_out(result)


@router.delete("/{job_id}", response_model=ReconciliationRead)
def delete_sheet(job_id: JobId, db: Session = Depends(get_db)):
    try:
        result = delete_cost_sheet(db, job_id=job_id)
    except CostSheetValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SheetPersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Error deleting sheet: {e}")
    return _reconciliation_out(result)


@router.get("/{job_id}/export.pdf")
def export_cost_sheet_pdf(job_id: JobId, db: Session = Depends(get_db)):
    sheet, persisted = _load_sheet(db, job_id)
    if not persisted:
        raise HTTPException(status_code=404, detail="Cost sheet not found")

    pdf = render_cost_sheet_pdf(job_id, sheet_lines(sheet), status=sheet.status)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="Job_Costing_{job_id}.pdf"'},
    )


# ---------- Edition brouillon (rien n'est persisté) ----------
@router.post("/{job_id}/lines", response_model=DraftLines)
def add_sheet_line(job_id: JobId, payload: LineAdd, db: Session = Depends(get_db)):
    inventory_item = db.get(InventoryItem, payload.inventory_id)
    if not inventory_item:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return _draft_out(add_line(payload.items, inventory_item))


@router.patch("/{job_id}/lines/{inventory_id}", response_model=DraftLines)
def edit_sheet_line(job_id: JobId, inventory_id: int, payload: LineEdit):
    try:
        items = apply_line_edit(
            payload.items,
            inventory_id,
            payload.stage,
            issued_qty=payload.issued_qty,
            returned_qty=payload.returned_qty,
        )
    except CostSheetValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _draft_out(items)


@router.post("/{job_id}/lines/{inventory_id}/remove", response_model=DraftLines)
def remove_sheet_line(job_id: JobId, inventory_id: int, payload: LineRemove):
    return _draft_out(remove_line(payload.items, inventory_id))
