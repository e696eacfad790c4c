from decimal import Decimal

from pydantic import BaseModel, Field, field_validator


class InventoryItemCreate(BaseModel):
    code: str | None = Field(default=None, max_length=64)
    description: str = Field(min_length=1, max_length=255)
    unit: str = Field(default="PCS", min_length=1, max_length=32)
    price: Decimal = Field(default=Decimal("0.00"), ge=0, decimal_places=2)
    stock: int = 0
    critical_stock: int = 10

    @field_validator("description", "unit")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v


class InventoryItemUpdate(BaseModel):
    code: str | None = Field(default=None, max_length=64)
    description: str | None = Field(default=None, min_length=1, max_length=255)
    unit: str | None = Field(default=None, min_length=1, max_length=32)
    price: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    stock: int | None = None
    critical_stock: int | None = None


class InventoryItemRead(BaseModel):
    id: int
    code: str | None
    description: str
    unit: str
    price: Decimal
    stock: int
    critical_stock: int
    is_critical: bool  # READ ONLY — stock <= critical_stock

    class Config:
        from_attributes = True
