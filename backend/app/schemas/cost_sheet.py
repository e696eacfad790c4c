from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from backend.app.db.models.core_types import CostingStage, SheetStatus


class CostSheetItem(BaseModel):
    """
    Ligne d'une feuille de coûts.

    code/description/unit/price sont un snapshot du catalogue au moment
    de l'ajout : ils ne suivent pas les modifications ultérieures du prix.
    """

    inventory_id: int
    code: str | None = ""
    description: str = ""
    unit: str = "PCS"
    price: Decimal = Field(default=Decimal("0.00"), ge=0)
    issued_qty: int = Field(default=0, ge=0)
    returned_qty: int = Field(default=0, ge=0)

    @property
    def net(self) -> int:
        # non borné : peut être négatif (returned > issued)
        return self.issued_qty - self.returned_qty

    class Config:
        from_attributes = True


def _reject_duplicate_lines(items: list[CostSheetItem]) -> list[CostSheetItem]:
    seen: set[int] = set()
    for item in items:
        if item.inventory_id in seen:
            raise ValueError(f"duplicate line for inventory_id={item.inventory_id}")
        seen.add(item.inventory_id)
    return items


class CostSheetSave(BaseModel):
    items: list[CostSheetItem] = Field(default_factory=list)
    stage: CostingStage = CostingStage.issued

    @field_validator("items")
    @classmethod
    def _unique_lines(cls, v: list[CostSheetItem]) -> list[CostSheetItem]:
        return _reject_duplicate_lines(v)


class CostSheetRead(BaseModel):
    job_id: str
    items: list[CostSheetItem]
    status: SheetStatus
    stage: CostingStage
    total_cost: Decimal  # recalculé, jamais lu depuis le cache
    persisted: bool
    # {inventory_id: net restant à imputer}, > 0 à déduire, < 0 à remettre
    pending_consumption: dict[int, int] = Field(default_factory=dict)
    # un delete partiel attend d'être relancé
    pending_reversal: bool = False


class LineAdd(BaseModel):
    inventory_id: int
    items: list[CostSheetItem] = Field(default_factory=list)

    @field_validator("items")
    @classmethod
    def _unique_lines(cls, v: list[CostSheetItem]) -> list[CostSheetItem]:
        return _reject_duplicate_lines(v)


class LineEdit(BaseModel):
    stage: CostingStage
    issued_qty: int | None = Field(default=None, ge=0)
    returned_qty: int | None = Field(default=None, ge=0)
    items: list[CostSheetItem] = Field(default_factory=list)

    @field_validator("items")
    @classmethod
    def _unique_lines(cls, v: list[CostSheetItem]) -> list[CostSheetItem]:
        return _reject_duplicate_lines(v)


class LineRemove(BaseModel):
    items: list[CostSheetItem] = Field(default_factory=list)

    @field_validator("items")
    @classmethod
    def _unique_lines(cls, v: list[CostSheetItem]) -> list[CostSheetItem]:
        return _reject_duplicate_lines(v)


class DraftLines(BaseModel):
    items: list[CostSheetItem]
    total_cost: Decimal


class FailedAdjustmentRead(BaseModel):
    inventory_id: int
    description: str
    diff: int
    reason: str


class ReconciliationRead(BaseModel):
    job_id: str
    applied: int
    failed: list[FailedAdjustmentRead]
    status: SheetStatus | None
    total_cost: Decimal
    sheet_removed: bool = False
