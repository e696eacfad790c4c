"""
Calcul du coût d'une feuille + édition des lignes en mémoire.

Aucune I/O ici : fonctions pures sur des CostSheetItem.

Asymétrie voulue :
- coût  : max(0, issued - returned) * price  (borné à 0)
- stock : issued - returned                  (NON borné, cf. inventory.py)
Ne pas unifier sans confirmation métier.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from backend.app.db.models.core_types import CostingStage
from backend.app.db.models.models_v1 import JOB_ID_MAX_LENGTH, InventoryItem
from backend.app.schemas.cost_sheet import CostSheetItem
from backend.services.errors import CostSheetValidationError

CENT = Decimal("0.01")

# champ éditable par stage ; Final = lecture seule
EDITABLE_FIELDS = {
    CostingStage.issued: frozenset({"issued_qty"}),
    CostingStage.returned: frozenset({"returned_qty"}),
    CostingStage.final: frozenset(),
}


def consumed_qty(item: CostSheetItem) -> int:
    return max(0, item.issued_qty - item.returned_qty)


def line_cost(item: CostSheetItem) -> Decimal:
    return (Decimal(consumed_qty(item)) * Decimal(item.price)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_total_cost(items: Iterable[CostSheetItem]) -> Decimal:
    total = sum((line_cost(item) for item in items), Decimal("0"))
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


def validate_job_id(job_id: str) -> str:
    # la clé est un VARCHAR borné : refuser avant la moindre écriture stock
    if not job_id or not job_id.strip():
        raise CostSheetValidationError("job_id is required")
    if len(job_id) > JOB_ID_MAX_LENGTH:
        raise CostSheetValidationError(f"job_id longer than {JOB_ID_MAX_LENGTH} characters")
    return job_id


def validate_candidate(items: Iterable[CostSheetItem]) -> list[CostSheetItem]:
    """
    Une seule ligne par inventory_id, quantités >= 0.
    Levée AVANT toute I/O store.
    """
    items = list(items)
    seen: set[int] = set()
    for item in items:
        if item.inventory_id in seen:
            raise CostSheetValidationError(f"Duplicate line for inventory_id={item.inventory_id}")
        if item.issued_qty < 0 or item.returned_qty < 0:
            raise CostSheetValidationError(
                f"Negative quantity for inventory_id={item.inventory_id}"
            )
        seen.add(item.inventory_id)
    return items


def editable_fields(stage: CostingStage | str) -> frozenset[str]:
    return EDITABLE_FIELDS[CostingStage(stage)]


def add_line(items: list[CostSheetItem], inventory_item: InventoryItem) -> list[CostSheetItem]:
    """Ajoute un article du catalogue (snapshot prix/libellé). No-op si déjà présent."""
    if any(i.inventory_id == inventory_item.id for i in items):
        return list(items)

    line = CostSheetItem(
        inventory_id=int(inventory_item.id),
        code=inventory_item.code or "",
        description=inventory_item.description,
        unit=inventory_item.unit,
        price=Decimal(inventory_item.price),
        issued_qty=0,
        returned_qty=0,
    )
    return [*items, line]


def remove_line(items: list[CostSheetItem], inventory_id: int) -> list[CostSheetItem]:
    # la consommation déjà enregistrée sera reversée au prochain save
    return [i for i in items if i.inventory_id != inventory_id]


def apply_line_edit(
    items: list[CostSheetItem],
    inventory_id: int,
    stage: CostingStage | str,
    *,
    issued_qty: int | None = None,
    returned_qty: int | None = None,
) -> list[CostSheetItem]:
    allowed = editable_fields(stage)
    changes = {}
    if issued_qty is not None:
        changes["issued_qty"] = issued_qty
    if returned_qty is not None:
        changes["returned_qty"] = returned_qty

    forbidden = sorted(set(changes) - allowed)
    if forbidden:
        raise CostSheetValidationError(
            f"{', '.join(forbidden)} cannot be edited at stage {CostingStage(stage).value}"
        )
    if any(v < 0 for v in changes.values()):
        raise CostSheetValidationError("Quantities must be >= 0")
    if not any(i.inventory_id == inventory_id for i in items):
        raise CostSheetValidationError(f"No line for inventory_id={inventory_id} on this sheet")

    return [
        i.model_copy(update=changes) if i.inventory_id == inventory_id else i
        for i in items
    ]
