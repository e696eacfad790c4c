from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import InventoryItem

logger = logging.getLogger(__name__)

DEFAULT_STOCK = 1000
DEFAULT_CRITICAL_STOCK = 50

# (code, description, unit, prix)
PACKING_MATERIALS = [
    ("PKG 10182", "Small Carton 46 X 34 X 34", "PCS", "4.50"),
    ("PKG 10183", "Medium Carton 47 X 47 X 52", "PCS", "5.75"),
    ("PKG 10184", "Large Carton 47 X 47 X 77", "PCS", "7.25"),
    ("PKG 10186", "Flat Wardrobe 92 X 47 X 26", "PCS", "9.00"),
    ("PKG 10193", "Hanging Wardrobe 53 X 46 X 126", "PCS", "9.50"),
    ("PKG 10190", "1 CBM BOX", "PCS", "8.75"),
    ("PKG 10195", "Cardboard Roll 130cmx20kg", "ROL", "6.40"),
    ("PKG 10196", "Hardboard Sheet 220x120", "PCS", "5.10"),
    ("PKG 10207", "Air Bubble Roll", "ROL", "7.80"),
    ("PKG 10202", "White Paper", "KGs", "2.30"),
    ("PKG 10197", "Polythene Roll (Plastic Roll)", "ROL", "6.90"),
    ("PKG 100018", "Shrink Wrap", "ROL", "8.20"),
    ("PKG 10209", "Masking Tape / Packing Tape", "PCS", "1.50"),
    ("PKG 10214", "6 MM Ply HT", "EA", "9.90"),
    ("PKG 10219", "1X4 Wood HT", "EA", "3.60"),
    ("PKG 10224", "2X4 Wood HT", "EA", "4.20"),
    ("PKG 10243", "Silica gel", "PCS", "1.10"),
    ("PKG 10192", "Hanging Rod", "PCS", "2.75"),
    (None, "White Soft Foam", "ROL", "5.60"),
    (None, "Tools Box for all dismantled Hardware", "PCS", "3.25"),
    (None, "Salvage carton", "PCS", "1.00"),
]


def seed_packing_materials(db: Session) -> int:
    """
    Importe la liste standard. Un article existant (même code, ou même
    libellé pour les articles sans code) n'est ni remplacé ni dupliqué.
    """
    existing = db.execute(select(InventoryItem.code, InventoryItem.description)).all()
    codes = {code for code, _ in existing if code}
    descriptions = {desc for _, desc in existing}

    created = 0
    for code, description, unit, price in PACKING_MATERIALS:
        if (code and code in codes) or (not code and description in descriptions):
            continue
        db.add(
            InventoryItem(
                code=code,
                description=description,
                unit=unit,
                price=Decimal(price),
                stock=DEFAULT_STOCK,
                critical_stock=DEFAULT_CRITICAL_STOCK,
            )
        )
        created += 1

    db.commit()
    logger.info("Seeded %d packing material(s)", created)
    return created


def run_seed():
    db = SessionLocal()
    try:
        created = seed_packing_materials(db)
        print(f"SEED OK: {created} packing material(s) imported")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
