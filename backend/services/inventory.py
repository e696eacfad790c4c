"""
Réconciliation stock <-> feuilles de coûts par job.

Règle métier :
    stock = stock_baseline - SUM(net consommé attribué par chaque feuille vivante)
    net   = issued_qty - returned_qty   (NON borné à 0)

Propriétés :
- save rejoué à l'identique = aucune écriture stock (idempotent)
- save puis delete = stock d'origine
- le diff est calculé contre ce qui a réellement été imputé au stock
  (applied_consumption), donc rededuct reprend exactement les deltas manquants

Limites connues (à ne PAS corriger en douce) :
- read-modify-write article par article, pas de transaction multi-articles
- un échec de persistance de la feuille ne rollback PAS les écritures stock déjà faites
- delete ne supprime la feuille que si tous les reversals ont abouti
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy.orm import Session

from backend.app.db.models.core_types import CostingStage, SheetStatus, status_for_stage
from backend.app.db.models.models_v1 import JobCostSheet
from backend.app.schemas.cost_sheet import CostSheetItem
from backend.services.costing import calculate_total_cost, validate_candidate, validate_job_id
from backend.services.errors import SheetPersistenceError, StoreError
from backend.services.stores import (
    CostSheetStore,
    InventoryStore,
    SqlCostSheetStore,
    SqlInventoryStore,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsumptionChange:
    inventory_id: int
    old_net: int
    new_net: int
    description: str = ""

    @property
    def diff(self) -> int:
        # > 0 : consommation en hausse -> on retire du stock
        # < 0 : consommation en baisse -> on remet en stock
        return self.new_net - self.old_net


@dataclass
class FailedAdjustment:
    inventory_id: int
    description: str
    diff: int
    reason: str


@dataclass
class ReconciliationResult:
    job_id: str
    applied: int = 0
    failed: list[FailedAdjustment] = field(default_factory=list)
    status: SheetStatus | None = None
    total_cost: Decimal = Decimal("0.00")
    sheet_removed: bool = False

    @property
    def complete(self) -> bool:
        return not self.failed


def sheet_lines(sheet: JobCostSheet | None) -> list[CostSheetItem]:
    if sheet is None or not sheet.items:
        return []
    return [CostSheetItem.model_validate(raw) for raw in sheet.items]


def net_consumption(items: Iterable[CostSheetItem]) -> dict[int, int]:
    return {int(item.inventory_id): item.net for item in items}


def attributed_consumption(sheet: JobCostSheet | None) -> dict[int, int]:
    """Net actuellement imputé au stock par cette feuille."""
    if sheet is None:
        return {}
    if sheet.applied_consumption is None:
        return net_consumption(sheet_lines(sheet))
    return {int(k): int(v) for k, v in sheet.applied_consumption.items()}


def consumption_changes(
    previous: Mapping[int, int],
    candidate: Mapping[int, int],
    descriptions: Mapping[int, str] | None = None,
) -> dict[int, ConsumptionChange]:
    """
    Union des articles précédents et candidats.
    Un article absent d'un côté compte pour 0.
    """
    descriptions = descriptions or {}
    keys = set(previous) | set(candidate)
    return {
        inv_id: ConsumptionChange(
            inventory_id=inv_id,
            old_net=int(previous.get(inv_id, 0)),
            new_net=int(candidate.get(inv_id, 0)),
            description=descriptions.get(inv_id, ""),
        )
        for inv_id in keys
    }


def pending_consumption(sheet: JobCostSheet | None) -> dict[int, int]:
    """
    Consommation restant à imputer au stock, par article.
    > 0 : à déduire, < 0 : à remettre en stock.
    Feuille en cours de suppression : la cible est 0 pour tout article.
    """
    if sheet is None:
        return {}
    target = {} if sheet.pending_deletion else net_consumption(sheet_lines(sheet))
    changes = consumption_changes(attributed_consumption(sheet), target)
    return {inv_id: c.diff for inv_id, c in sorted(changes.items()) if c.diff != 0}


def _serialize_ledger(ledger: Mapping[int, int]) -> dict[str, int]:
    return {str(k): int(v) for k, v in sorted(ledger.items()) if v != 0}


class ReconciliationEngine:
    def __init__(self, sheets: CostSheetStore, inventory: InventoryStore):
        self.sheets = sheets
        self.inventory = inventory

    def _read_previous(self, job_id: str, action: str) -> JobCostSheet | None:
        # pas de "feuille vide" par défaut ici : sur erreur de lecture on
        # déduirait une seconde fois tout le contenu
        try:
            return self.sheets.get(job_id)
        except StoreError as exc:
            logger.exception("Cannot read cost sheet for job %s", job_id)
            raise SheetPersistenceError(job_id, action, exc) from exc

    def _adjust_stock(
        self,
        change: ConsumptionChange,
        delta: int,
        result: ReconciliationResult,
        missing_ok: bool = False,
    ) -> bool:
        """
        Read-modify-write d'un article : stock = stock - delta.
        Erreur loggée, ajoutée à result.failed, jamais levée.

        missing_ok : article disparu du catalogue = rien à ajuster,
        renvoie True sans compter d'écriture (chemin delete).
        """
        inv_id = change.inventory_id
        label = change.description or f"item {inv_id}"
        try:
            master = self.inventory.get(inv_id)
        except StoreError as exc:
            logger.error("Failed to read stock for %s: %s", label, exc)
            result.failed.append(FailedAdjustment(inv_id, change.description, delta, str(exc)))
            return False

        if master is None:
            if missing_ok:
                logger.warning("Inventory item %s (%s) not found, nothing to reverse", inv_id, label)
                return True
            logger.warning("Inventory item %s (%s) not found, stock not adjusted", inv_id, label)
            result.failed.append(FailedAdjustment(inv_id, change.description, delta, "inventory item not found"))
            return False

        current = int(master.stock)
        new_stock = current - delta
        try:
            self.inventory.set_stock(inv_id, new_stock)
        except StoreError as exc:
            logger.error("Failed to update stock for %s: %s", label, exc)
            result.failed.append(FailedAdjustment(inv_id, change.description, delta, str(exc)))
            return False

        logger.info(
            "Job %s: stock %s %s -> %s (delta %+d)",
            result.job_id, label, current, new_stock, -delta,
        )
        result.applied += 1
        return True

    def save(
        self,
        job_id: str,
        items: Iterable[CostSheetItem],
        stage: CostingStage | str = CostingStage.issued,
    ) -> ReconciliationResult:
        validate_job_id(job_id)
        candidate = validate_candidate(items)
        status = status_for_stage(stage)
        result = ReconciliationResult(job_id=job_id, status=status)

        previous_sheet = self._read_previous(job_id, "save")
        ledger = attributed_consumption(previous_sheet)

        descriptions = {i.inventory_id: i.description for i in sheet_lines(previous_sheet)}
        descriptions.update({i.inventory_id: i.description for i in candidate})
        changes = consumption_changes(ledger, net_consumption(candidate), descriptions)

        # séquentiel, ordre déterministe : un article est lu/écrit avant le suivant
        for inv_id in sorted(changes):
            change = changes[inv_id]
            if change.diff == 0:
                continue
            if self._adjust_stock(change, change.diff, result):
                ledger[inv_id] = change.new_net

        result.total_cost = calculate_total_cost(candidate)

        sheet = JobCostSheet(
            job_id=job_id,
            items=[i.model_dump(mode="json") for i in candidate],
            applied_consumption=_serialize_ledger(ledger),
            # explicite : merge ne recopie pas un attribut laissé au défaut
            pending_deletion=False,
            status=status,
            total_cost=result.total_cost,
        )
        try:
            self.sheets.upsert(sheet)
        except StoreError as exc:
            # les écritures stock déjà faites restent en place (pas de rollback)
            logger.exception(
                "Save failed for job %s after %d stock update(s)", job_id, result.applied
            )
            raise SheetPersistenceError(job_id, "save", exc) from exc

        if result.failed:
            logger.warning(
                "Job %s saved with %d stock update(s) pending, re-deduct to retry",
                job_id, len(result.failed),
            )
        return result

    def rededuct(
        self,
        job_id: str,
        items: Iterable[CostSheetItem],
        stage: CostingStage | str = CostingStage.issued,
    ) -> ReconciliationResult:
        """Reprise opérateur : même chemin que save, rejouable sans risque."""
        logger.info("Re-deduct requested for job %s", job_id)
        return self.save(job_id, items, stage)

    def delete(self, job_id: str) -> ReconciliationResult:
        """
        Remet en stock tout ce que la feuille a imputé, puis supprime la ligne.

        Article disparu du catalogue : rien à remettre, on le sort du ledger.
        StoreError sur un article : la feuille est gardée (pending_deletion)
        avec le reliquat, un nouveau delete termine.
        """
        validate_job_id(job_id)
        result = ReconciliationResult(job_id=job_id)

        previous_sheet = self._read_previous(job_id, "delete")
        if previous_sheet is None:
            logger.info("No cost sheet for job %s, nothing to reverse", job_id)
            return result

        result.status = previous_sheet.status
        ledger = attributed_consumption(previous_sheet)
        descriptions = {i.inventory_id: i.description for i in sheet_lines(previous_sheet)}
        changes = consumption_changes(ledger, {}, descriptions)

        for inv_id in sorted(changes):
            change = changes[inv_id]
            if change.old_net == 0:
                continue
            # stock + net : exacte inverse de l'application faite au save
            if self._adjust_stock(change, -change.old_net, result, missing_ok=True):
                ledger[inv_id] = 0

        try:
            if result.failed:
                # on garde la feuille avec le reliquat pour qu'un nouveau delete termine
                previous_sheet.applied_consumption = _serialize_ledger(ledger)
                previous_sheet.pending_deletion = True
                self.sheets.upsert(previous_sheet)
            else:
                self.sheets.delete(job_id)
                result.sheet_removed = True
        except StoreError as exc:
            logger.exception(
                "Delete failed for job %s after %d stock reversal(s)", job_id, result.applied
            )
            raise SheetPersistenceError(job_id, "delete", exc) from exc

        if result.failed:
            logger.warning(
                "Job %s: %d stock reversal(s) failed, sheet kept for retry",
                job_id, len(result.failed),
            )
        return result


def engine_for_session(db: Session) -> ReconciliationEngine:
    return ReconciliationEngine(SqlCostSheetStore(db), SqlInventoryStore(db))


def save_cost_sheet(
    db: Session,
    *,
    job_id: str,
    items: Iterable[CostSheetItem],
    stage: CostingStage | str = CostingStage.issued,
) -> ReconciliationResult:
    return engine_for_session(db).save(job_id, items, stage)


def rededuct_stock(
    db: Session,
    *,
    job_id: str,
    items: Iterable[CostSheetItem],
    stage: CostingStage | str = CostingStage.issued,
) -> ReconciliationResult:
    return engine_for_session(db).rededuct(job_id, items, stage)


def delete_cost_sheet(db: Session, *, job_id: str) -> ReconciliationResult:
    return engine_for_session(db).delete(job_id)
