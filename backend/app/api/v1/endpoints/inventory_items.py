from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from backend.app.api.deps import get_db
from backend.app.db.models.models_v1 import InventoryItem
from backend.app.db.seed import seed_packing_materials
from backend.app.schemas.inventory_item import (
    InventoryItemCreate,
    InventoryItemRead,
    InventoryItemUpdate,
)
from backend.services.documents import render_inventory_pdf
from backend.services.stores import SqlInventoryStore

router = APIRouter(prefix="/inventory-items")


@router.get("", response_model=list[InventoryItemRead])
def list_inventory_items(db: Session = Depends(get_db)):
    return SqlInventoryStore(db).list_items()


@router.get("/export.pdf")
def export_inventory_pdf(db: Session = Depends(get_db)):
    pdf = render_inventory_pdf(SqlInventoryStore(db).list_items())
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="inventory_stock.pdf"'},
    )


@router.post("/seed")
def seed_inventory_items(db: Session = Depends(get_db)):
    """Importe la liste standard des matériaux d'emballage, sans remplacer l'existant."""
    created = seed_packing_materials(db)
    return {"created": created}


@router.get("/{inventory_id}", response_model=InventoryItemRead)
def get_inventory_item(inventory_id: int, db: Session = Depends(get_db)):
    item = db.get(InventoryItem, inventory_id)
    if not item:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return item


@router.post("", response_model=InventoryItemRead, status_code=201)
def create_inventory_item(payload: InventoryItemCreate, db: Session = Depends(get_db)):
    item = InventoryItem(
        code=(payload.code or "").strip() or None,
        description=payload.description,
        unit=payload.unit,
        price=payload.price,
        stock=payload.stock,
        critical_stock=payload.critical_stock,
    )
    return SqlInventoryStore(db).add(item)


@router.patch("/{inventory_id}", response_model=InventoryItemRead)
def update_inventory_item(inventory_id: int, payload: InventoryItemUpdate, db: Session = Depends(get_db)):
    """
    Edition catalogue (prix, code, libellé, stock).
    Les lignes déjà présentes sur les feuilles gardent leur snapshot de prix.
    """
    fields = {
        k: v
        for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k == "code"
    }
    item = SqlInventoryStore(db).update(inventory_id, **fields)
    if not item:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return item
