from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    DateTime,
    Numeric,
    Enum,
    JSON,
    Boolean,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.db.base import Base
from backend.app.db.models.core_types import SheetStatus

JOB_ID_MAX_LENGTH = 64


# ---------- MASTER DATA ----------
class InventoryItem(Base):
    __tablename__ = "inventory_items"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    code: Mapped[str | None] = mapped_column(String(64), index=True)  # libellé, pas unique
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), default="PCS", nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)

    # stock signé : aucune contrainte >= 0, la réconciliation peut le faire passer en négatif
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    critical_stock: Mapped[int] = mapped_column(Integer, default=10, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_inventory_item_price_nonneg"),
    )

    @property
    def is_critical(self) -> bool:
        return self.stock <= self.critical_stock


# ---------- COSTING ----------
class JobCostSheet(Base):
    __tablename__ = "job_cost_sheets"
    job_id: Mapped[str] = mapped_column(String(JOB_ID_MAX_LENGTH), primary_key=True)

    # lignes figées (snapshot prix/libellé au moment de l'ajout)
    items: Mapped[list[dict]] = mapped_column(JSON, default=list, nullable=False)

    status: Mapped[SheetStatus] = mapped_column(
        Enum(SheetStatus, name="sheet_status", values_callable=lambda e: [m.value for m in e]),
        default=SheetStatus.issued,
        nullable=False,
    )
    # net réellement imputé au stock par article {"<inventory_id>": net}
    # NULL (anciennes lignes) => on retombe sur issued - returned des items
    applied_consumption: Mapped[dict | None] = mapped_column(JSON)
    # delete partiel : reversals en attente, un nouveau delete termine
    pending_deletion: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # cache, recalculé à chaque save / lecture
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0.00"), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )
