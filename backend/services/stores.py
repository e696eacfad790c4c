"""
Contrats des deux stores utilisés par la réconciliation + implémentations SQLAlchemy.

Chaque appel store est sa propre unité de travail : commit en cas de succès,
rollback + StoreError sinon. C'est ce qui donne la sémantique "best effort"
article par article (pas d'atomicité multi-articles).
"""
from __future__ import annotations

from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.db.models.core_types import SheetStatus
from backend.app.db.models.models_v1 import InventoryItem, JobCostSheet
from backend.services.errors import StoreError


class CostSheetStore(Protocol):
    def get(self, job_id: str) -> JobCostSheet | None: ...

    def upsert(self, sheet: JobCostSheet) -> JobCostSheet: ...

    def delete(self, job_id: str) -> None: ...


class InventoryStore(Protocol):
    def get(self, inventory_id: int) -> InventoryItem | None: ...

    def set_stock(self, inventory_id: int, new_stock: int) -> None: ...


def empty_sheet(job_id: str) -> JobCostSheet:
    return JobCostSheet(
        job_id=job_id,
        items=[],
        status=SheetStatus.issued,
        total_cost=0,
    )


def get_or_default(store: CostSheetStore, job_id: str) -> tuple[JobCostSheet, bool]:
    """
    Feuille persistée ou feuille vide "Issued" si aucune n'existe.
    Retourne (sheet, persisted).
    """
    sheet = store.get(job_id)
    if sheet is None:
        return empty_sheet(job_id), False
    return sheet, True


class SqlCostSheetStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, job_id: str) -> JobCostSheet | None:
        try:
            return self.db.get(JobCostSheet, job_id, populate_existing=True)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"cost sheet read failed for job {job_id}: {exc}") from exc

    def upsert(self, sheet: JobCostSheet) -> JobCostSheet:
        try:
            merged = self.db.merge(sheet)
            self.db.commit()
            return merged
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"cost sheet upsert failed for job {sheet.job_id}: {exc}") from exc

    def delete(self, job_id: str) -> None:
        try:
            self.db.execute(delete(JobCostSheet).where(JobCostSheet.job_id == job_id))
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"cost sheet delete failed for job {job_id}: {exc}") from exc


class SqlInventoryStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, inventory_id: int) -> InventoryItem | None:
        """
        Lecture fraîche du stock.

        FOR UPDATE : le verrou ligne est tenu jusqu'au commit du set_stock
        qui suit (Postgres). SQLite ignore la clause.
        """
        try:
            return (
                self.db.execute(
                    select(InventoryItem)
                    .where(InventoryItem.id == inventory_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
                .scalar_one_or_none()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"inventory read failed for item {inventory_id}: {exc}") from exc

    def set_stock(self, inventory_id: int, new_stock: int) -> None:
        try:
            item = self.db.get(InventoryItem, inventory_id)
            if item is None:
                raise StoreError(f"inventory item {inventory_id} disappeared before stock write")
            item.stock = int(new_stock)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"stock write failed for item {inventory_id}: {exc}") from exc

    # ---------- catalogue (couche API uniquement) ----------
    def list_items(self) -> list[InventoryItem]:
        return list(
            self.db.execute(
                select(InventoryItem).order_by(InventoryItem.code, InventoryItem.id)
            ).scalars()
        )

    def add(self, item: InventoryItem) -> InventoryItem:
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    def update(self, inventory_id: int, **fields) -> InventoryItem | None:
        item = self.db.get(InventoryItem, inventory_id)
        if item is None:
            return None
        for key, value in fields.items():
            setattr(item, key, value)
        self.db.commit()
        self.db.refresh(item)
        return item
