from decimal import Decimal

import pytest

from backend.app.db.models.core_types import CostingStage, SheetStatus
from backend.app.db.models.models_v1 import JobCostSheet
from backend.services.errors import CostSheetValidationError, SheetPersistenceError
from backend.services.inventory import (
    ReconciliationEngine,
    consumption_changes,
    delete_cost_sheet,
    pending_consumption,
    rededuct_stock,
    save_cost_sheet,
)
from backend.services.stores import SqlCostSheetStore, SqlInventoryStore
from backend.tests.factories import (
    FailingSheetStore,
    FlakyInventoryStore,
    UnreadableSheetStore,
    line,
    stock_of,
)


def test_job_lifecycle_issue_return_delete(db_session, make_item):
    """
    GIVEN
    - article 7, stock 100, prix 2.50
    - aucune feuille pour J1

    THEN
    - save issued=10        -> stock 90, total 25.00
    - save returned=4       -> stock 94, total 15.00, statut Returned
    - delete                -> stock 100, feuille supprimée
    """
    item = make_item(id=7, stock=100, price="2.50")

    result = save_cost_sheet(db_session, job_id="J1", items=[line(item, issued=10)], stage=CostingStage.issued)
    assert result.applied == 1
    assert result.total_cost == Decimal("25.00")
    assert stock_of(db_session, 7) == 90

    result = save_cost_sheet(
        db_session, job_id="J1", items=[line(item, issued=10, returned=4)], stage=CostingStage.returned
    )
    assert result.applied == 1
    assert result.total_cost == Decimal("15.00")
    assert result.status == SheetStatus.returned
    assert stock_of(db_session, 7) == 94

    sheet = db_session.get(JobCostSheet, "J1")
    assert sheet.status == SheetStatus.returned
    assert sheet.total_cost == Decimal("15.00")

    result = delete_cost_sheet(db_session, job_id="J1")
    assert result.applied == 1
    assert result.sheet_removed is True
    assert stock_of(db_session, 7) == 100
    assert db_session.get(JobCostSheet, "J1") is None


def test_resave_identical_sheet_is_noop(db_session, make_item):
    a = make_item(code="A", stock=50)
    b = make_item(code="B", stock=20)
    items = [line(a, issued=5), line(b, issued=3, returned=1)]

    first = save_cost_sheet(db_session, job_id="J2", items=items)
    assert first.applied == 2

    second = save_cost_sheet(db_session, job_id="J2", items=items)
    assert second.applied == 0
    assert second.failed == []
    assert stock_of(db_session, a.id) == 45
    assert stock_of(db_session, b.id) == 18


def test_save_then_delete_restores_stock(db_session, make_item):
    a = make_item(code="A", stock=10)
    b = make_item(code="B", stock=0)
    c = make_item(code="C", stock=-4)

    save_cost_sheet(
        db_session,
        job_id="J3",
        items=[line(a, issued=12), line(b, issued=1, returned=6), line(c, issued=0)],
    )
    assert stock_of(db_session, a.id) == -2
    assert stock_of(db_session, b.id) == 5
    assert stock_of(db_session, c.id) == -4

    delete_cost_sheet(db_session, job_id="J3")
    assert stock_of(db_session, a.id) == 10
    assert stock_of(db_session, b.id) == 0
    assert stock_of(db_session, c.id) == -4


def test_removed_line_returns_its_consumption(db_session, make_item):
    a = make_item(code="A", stock=100)
    b = make_item(code="B", stock=100)

    save_cost_sheet(db_session, job_id="J4", items=[line(a, issued=5), line(b, issued=2)])
    assert stock_of(db_session, a.id) == 95

    result = save_cost_sheet(db_session, job_id="J4", items=[line(b, issued=2)])
    assert result.applied == 1
    assert stock_of(db_session, a.id) == 100
    assert stock_of(db_session, b.id) == 98


def test_increasing_issue_only_deducts_the_difference(db_session, make_item):
    a = make_item(code="A", stock=100)

    save_cost_sheet(db_session, job_id="J5", items=[line(a, issued=5)])
    assert stock_of(db_session, a.id) == 95

    result = save_cost_sheet(db_session, job_id="J5", items=[line(a, issued=8)])
    assert result.applied == 1
    assert stock_of(db_session, a.id) == 92

    result = save_cost_sheet(db_session, job_id="J5", items=[line(a, issued=8)])
    assert result.applied == 0
    assert stock_of(db_session, a.id) == 92


def test_cost_is_clamped_but_stock_is_not(db_session, make_item):
    a = make_item(code="A", stock=100, price="4.00")

    result = save_cost_sheet(db_session, job_id="J6", items=[line(a, issued=2, returned=5)])

    assert result.total_cost == Decimal("0.00")
    # net = -3 : le stock remonte au-delà de ce qui a été sorti
    assert stock_of(db_session, a.id) == 103


def test_duplicate_lines_are_rejected_before_any_write(db_session, make_item):
    a = make_item(code="A", stock=100)

    with pytest.raises(CostSheetValidationError):
        save_cost_sheet(db_session, job_id="J7", items=[line(a, issued=1), line(a, issued=2)])

    assert stock_of(db_session, a.id) == 100
    assert db_session.get(JobCostSheet, "J7") is None


def test_final_stage_persists_finalized_status(db_session, make_item):
    a = make_item(code="A")

    result = save_cost_sheet(db_session, job_id="J8", items=[line(a, issued=1)], stage=CostingStage.final)

    assert result.status == SheetStatus.finalized
    assert db_session.get(JobCostSheet, "J8").status == SheetStatus.finalized


def test_partial_failure_is_reported_and_rededuct_resumes(db_session, make_item):
    a = make_item(code="A", stock=100)
    b = make_item(code="B", stock=100)
    items = [line(a, issued=5), line(b, issued=3)]

    flaky = ReconciliationEngine(SqlCostSheetStore(db_session), FlakyInventoryStore(db_session, fail_on={b.id}))
    result = flaky.save("J9", items, CostingStage.issued)

    assert result.applied == 1
    assert [f.inventory_id for f in result.failed] == [b.id]
    assert result.failed[0].diff == 3
    assert stock_of(db_session, a.id) == 95
    assert stock_of(db_session, b.id) == 100
    # la feuille est bien enregistrée avec les deux lignes
    assert len(db_session.get(JobCostSheet, "J9").items) == 2

    result = rededuct_stock(db_session, job_id="J9", items=items, stage=CostingStage.issued)
    assert result.applied == 1
    assert result.failed == []
    assert stock_of(db_session, a.id) == 95
    assert stock_of(db_session, b.id) == 97

    result = rededuct_stock(db_session, job_id="J9", items=items, stage=CostingStage.issued)
    assert result.applied == 0
    assert stock_of(db_session, b.id) == 97


def test_delete_after_partial_failure_reverses_only_what_landed(db_session, make_item):
    a = make_item(code="A", stock=100)
    b = make_item(code="B", stock=100)
    items = [line(a, issued=5), line(b, issued=3)]

    flaky = ReconciliationEngine(SqlCostSheetStore(db_session), FlakyInventoryStore(db_session, fail_on={b.id}))
    flaky.save("J10", items, CostingStage.issued)

    delete_cost_sheet(db_session, job_id="J10")

    assert stock_of(db_session, a.id) == 100
    assert stock_of(db_session, b.id) == 100


def test_sheet_persistence_failure_does_not_roll_back_stock(db_session, make_item):
    a = make_item(code="A", stock=100)

    engine = ReconciliationEngine(FailingSheetStore(db_session), SqlInventoryStore(db_session))
    with pytest.raises(SheetPersistenceError):
        engine.save("J11", [line(a, issued=4)], CostingStage.issued)

    assert stock_of(db_session, a.id) == 96
    assert db_session.get(JobCostSheet, "J11") is None


def test_unreadable_previous_sheet_aborts_save(db_session, make_item):
    a = make_item(code="A", stock=100)

    engine = ReconciliationEngine(UnreadableSheetStore(db_session), SqlInventoryStore(db_session))
    with pytest.raises(SheetPersistenceError):
        engine.save("J12", [line(a, issued=4)], CostingStage.issued)

    assert stock_of(db_session, a.id) == 100


def test_missing_catalog_item_is_skipped(db_session, make_item):
    a = make_item(code="A", stock=100)
    ghost = line(a, issued=2).model_copy(update={"inventory_id": 999, "description": "Ghost"})

    result = save_cost_sheet(db_session, job_id="J13", items=[line(a, issued=1), ghost])

    assert result.applied == 1
    assert [f.inventory_id for f in result.failed] == [999]
    assert stock_of(db_session, a.id) == 99


def test_delete_partial_failure_keeps_sheet_for_retry(db_session, make_item):
    a = make_item(code="A", stock=100)
    b = make_item(code="B", stock=100)
    save_cost_sheet(db_session, job_id="J14", items=[line(a, issued=5), line(b, issued=3)])

    flaky = ReconciliationEngine(SqlCostSheetStore(db_session), FlakyInventoryStore(db_session, fail_on={b.id}))
    result = flaky.delete("J14")

    assert result.applied == 1
    assert result.sheet_removed is False
    assert stock_of(db_session, a.id) == 100
    assert stock_of(db_session, b.id) == 97
    kept = db_session.get(JobCostSheet, "J14")
    assert kept is not None
    assert kept.pending_deletion is True
    # reste à remettre en stock : les 3 de B
    assert pending_consumption(kept) == {b.id: -3}

    result = delete_cost_sheet(db_session, job_id="J14")
    assert result.applied == 1
    assert result.sheet_removed is True
    assert stock_of(db_session, a.id) == 100
    assert stock_of(db_session, b.id) == 100


def test_delete_unknown_job_is_noop(db_session):
    result = delete_cost_sheet(db_session, job_id="NOPE")

    assert result.applied == 0
    assert result.sheet_removed is False


def test_delete_failure_is_surfaced(db_session, make_item):
    a = make_item(code="A", stock=100)
    save_cost_sheet(db_session, job_id="J15", items=[line(a, issued=5)])

    engine = ReconciliationEngine(FailingSheetStore(db_session), SqlInventoryStore(db_session))
    with pytest.raises(SheetPersistenceError):
        engine.delete("J15")

    # reversal déjà appliqué, feuille toujours là
    assert stock_of(db_session, a.id) == 100
    assert db_session.get(JobCostSheet, "J15") is not None


def test_legacy_sheet_without_ledger_uses_line_quantities(db_session, make_item):
    a = make_item(code="A", stock=90)
    db_session.add(
        JobCostSheet(
            job_id="J16",
            items=[line(a, issued=10).model_dump(mode="json")],
            applied_consumption=None,
            status=SheetStatus.issued,
            total_cost=Decimal("25.00"),
        )
    )
    db_session.commit()

    result = save_cost_sheet(db_session, job_id="J16", items=[line(a, issued=10)])
    assert result.applied == 0

    delete_cost_sheet(db_session, job_id="J16")
    assert stock_of(db_session, a.id) == 100


def test_consumption_changes_covers_union_of_items():
    changes = consumption_changes({1: 5, 2: 3}, {2: 3, 3: -2})

    assert {k: c.diff for k, c in changes.items()} == {1: -5, 2: 0, 3: -2}
    assert changes[1].old_net == 5 and changes[1].new_net == 0


def test_delete_with_missing_catalog_item_removes_sheet(db_session, make_item):
    """
    GIVEN
    - feuille J17 avec A (5) et B (3)
    - B supprimé du catalogue ensuite

    THEN
    - delete remet A en stock, B n'a plus rien à recevoir
    - la feuille est supprimée dès le premier delete
    """
    a = make_item(code="A", stock=100)
    b = make_item(code="B", stock=100)
    save_cost_sheet(db_session, job_id="J17", items=[line(a, issued=5), line(b, issued=3)])

    db_session.delete(b)
    db_session.commit()

    result = delete_cost_sheet(db_session, job_id="J17")

    assert result.failed == []
    assert result.applied == 1
    assert result.sheet_removed is True
    assert stock_of(db_session, a.id) == 100
    assert db_session.get(JobCostSheet, "J17") is None
    assert delete_cost_sheet(db_session, job_id="J17").sheet_removed is False


def test_resave_after_partial_delete_clears_pending_deletion(db_session, make_item):
    a = make_item(code="A", stock=100)
    b = make_item(code="B", stock=100)
    items = [line(a, issued=5), line(b, issued=3)]
    save_cost_sheet(db_session, job_id="J18", items=items)

    flaky = ReconciliationEngine(SqlCostSheetStore(db_session), FlakyInventoryStore(db_session, fail_on={b.id}))
    flaky.delete("J18")

    # l'opérateur renonce à la suppression : on repart du ledger restant (B seul)
    result = save_cost_sheet(db_session, job_id="J18", items=items)

    assert result.applied == 1
    assert stock_of(db_session, a.id) == 95
    assert stock_of(db_session, b.id) == 97
    sheet = db_session.get(JobCostSheet, "J18")
    assert sheet.pending_deletion is False
    assert pending_consumption(sheet) == {}


@pytest.mark.parametrize("job_id", ["", "   ", "J" * 65])
def test_invalid_job_id_is_rejected_before_any_write(db_session, make_item, job_id):
    a = make_item(code="A", stock=100)

    with pytest.raises(CostSheetValidationError):
        save_cost_sheet(db_session, job_id=job_id, items=[line(a, issued=4)])
    with pytest.raises(CostSheetValidationError):
        delete_cost_sheet(db_session, job_id=job_id)

    assert stock_of(db_session, a.id) == 100


def test_job_id_at_column_limit_is_accepted(db_session, make_item):
    a = make_item(code="A", stock=100)

    result = save_cost_sheet(db_session, job_id="J" * 64, items=[line(a, issued=4)])

    assert result.applied == 1
    assert stock_of(db_session, a.id) == 96


def test_pending_consumption_after_partial_save(db_session, make_item):
    a = make_item(code="A", stock=100)
    b = make_item(code="B", stock=100)

    flaky = ReconciliationEngine(SqlCostSheetStore(db_session), FlakyInventoryStore(db_session, fail_on={b.id}))
    flaky.save("J19", [line(a, issued=5), line(b, issued=3, returned=1)], CostingStage.issued)

    sheet = db_session.get(JobCostSheet, "J19")
    assert sheet.pending_deletion is False
    assert pending_consumption(sheet) == {b.id: 2}
