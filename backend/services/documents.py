"""
Exports PDF (lecture seule) : feuille de coûts d'un job, liste du stock.

Rien n'est écrit : on met en page des données déjà réconciliées.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from backend.app.core.config import settings
from backend.app.db.models.core_types import SheetStatus
from backend.app.db.models.models_v1 import InventoryItem
from backend.app.schemas.cost_sheet import CostSheetItem
from backend.services.costing import calculate_total_cost, consumed_qty, line_cost

COMPANY_NAME = "RELOCATION OPERATIONS"

# (titre, largeur mm, alignement)
COST_SHEET_COLUMNS = [
    ("Code", 35, "L"),
    ("Description", 95, "L"),
    ("Unit", 20, "C"),
    ("Issued", 22, "C"),
    ("Return", 22, "C"),
    ("Net", 22, "C"),
    ("Rate", 25, "R"),
    ("Total", 26, "R"),
]

INVENTORY_COLUMNS = [
    ("SR#", 12, "C"),
    ("Code", 28, "L"),
    ("Description", 70, "L"),
    ("Unit", 16, "C"),
    ("Stock", 18, "C"),
    ("Min. Level", 20, "C"),
    ("Price", 26, "R"),
]


def _latin1(value) -> str:
    # polices core fpdf = latin-1 uniquement
    return str(value if value is not None else "").encode("latin-1", "replace").decode("latin-1")


def _money(value: Decimal) -> str:
    return f"{Decimal(value):.2f}"


def _header(pdf: FPDF, subtitle: str) -> None:
    pdf.set_font("Helvetica", "B", 16)
    pdf.cell(0, 10, COMPANY_NAME, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.set_font("Helvetica", "", 10)
    pdf.cell(0, 6, subtitle, new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(4)


def _table_row(pdf: FPDF, columns, values, *, bold: bool = False) -> None:
    pdf.set_font("Helvetica", "B" if bold else "", 9)
    for (_, width, align), value in zip(columns, values):
        pdf.cell(width, 8, _latin1(value), border="B", align=align)
    pdf.ln(8)


def render_cost_sheet_pdf(
    job_id: str,
    items: Iterable[CostSheetItem],
    status: SheetStatus | None = None,
    generated_on: date | None = None,
) -> bytes:
    items = list(items)
    generated_on = generated_on or date.today()

    pdf = FPDF(orientation="L")
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()
    _header(pdf, "JOB COSTING ASSESSMENT")

    pdf.set_font("Helvetica", "", 10)
    pdf.cell(90, 6, _latin1(f"Job Reference: {job_id}"))
    pdf.cell(60, 6, _latin1(f"Status: {status.value if status else SheetStatus.issued.value}"))
    pdf.cell(0, 6, f"Date Generated: {generated_on.isoformat()}", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(4)

    _table_row(pdf, COST_SHEET_COLUMNS, [c[0] for c in COST_SHEET_COLUMNS], bold=True)
    for item in items:
        _table_row(
            pdf,
            COST_SHEET_COLUMNS,
            [
                item.code,
                item.description,
                item.unit,
                item.issued_qty,
                item.returned_qty,
                consumed_qty(item),
                _money(item.price),
                _money(line_cost(item)),
            ],
        )

    pdf.ln(4)
    pdf.set_font("Helvetica", "B", 11)
    pdf.cell(
        0, 8,
        f"Total Material Cost ({settings.currency}): {_money(calculate_total_cost(items))}",
        align="R",
    )
    return bytes(pdf.output())


def render_inventory_pdf(items: Iterable[InventoryItem], generated_on: date | None = None) -> bytes:
    generated_on = generated_on or date.today()

    pdf = FPDF()
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()
    _header(pdf, f"INVENTORY STOCK REPORT - {generated_on.isoformat()}")

    columns = list(INVENTORY_COLUMNS)
    columns[-1] = (f"Price ({settings.currency})", columns[-1][1], columns[-1][2])

    _table_row(pdf, columns, [c[0] for c in columns], bold=True)
    for sr, item in enumerate(items, start=1):
        _table_row(
            pdf,
            columns,
            [
                sr,
                item.code or "",
                item.description,
                item.unit,
                item.stock,
                item.critical_stock,
                _money(item.price),
            ],
            bold=item.is_critical,
        )
    return bytes(pdf.output())
