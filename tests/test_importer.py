from decimal import Decimal

import pytest

from ledger_import.columns import ColumnMapping
from ledger_import.errors import BatchInputError
from ledger_import.importer import check_duplicates, import_batch, import_rows, preview_rows
from ledger_import.models import ImportOutcome, NormalizedTransaction
from ledger_import.normalizers import NormalizerConfig
from ledger_import.rules import CategoryRule, UnitRule
from tests.helpers.memory_store import MemoryRuleStore, MemoryTransactionStore

HEADERS = ["Date", "Description", "Amount", "Category"]


def _tx(description: str, amount="10", **extra) -> NormalizedTransaction:
    return NormalizedTransaction(
        source_id=1, date="2024-01-15", description=description, amount=amount, **extra
    )


def test_salary_payment_reimport_is_skipped(memory_store: MemoryTransactionStore):
    rows = [{"date": "2024-01-15", "description": "SALARY PAYMENT", "amount": 3000, "sourceId": 1}]

    first = import_batch(rows, store=memory_store)
    second = import_batch(rows, store=memory_store)

    assert (first.imported, first.skipped, first.errors) == (1, 0, [])
    assert (second.imported, second.skipped, second.errors) == (0, 1, [])
    assert len(memory_store.rows) == 1


def test_idempotent_reimport_of_raw_rows(memory_store: MemoryTransactionStore):
    raw = [
        ["2024-01-15", "Coffee", "-3.50", "Food"],
        ["2024-01-16", "Groceries", "-54.20", "Food"],
        ["2024-01-17", "Paycheck", "2000", "Income"],
    ]
    first = import_rows(HEADERS, raw, source_id=1, store=memory_store)
    second = import_rows(HEADERS, raw, source_id=1, store=memory_store)

    assert first.imported == 3 and first.status == "success"
    assert second.imported == 0
    assert second.skipped == second.total == 3


def test_persistence_failure_does_not_lose_following_rows(memory_store: MemoryTransactionStore):
    memory_store.fail_when = lambda tx: "disk full" if tx.description == "Broken" else None
    rows = [_tx("Broken"), _tx("Fine")]

    outcome = import_batch(rows, store=memory_store)

    assert outcome.imported == 1
    assert outcome.skipped == 0
    assert len(outcome.errors) == 1
    assert outcome.errors[0].index == 0
    assert outcome.errors[0].error == "disk full"
    assert outcome.status == "partial"
    assert [tx.description for tx in memory_store.rows.values()] == ["Fine"]


def test_duplicates_within_one_batch(memory_store: MemoryTransactionStore):
    outcome = import_batch([_tx("Coffee"), _tx("Coffee", amount="10.00")], store=memory_store)
    assert (outcome.imported, outcome.skipped) == (1, 1)


def test_uniqueness_race_counts_as_skip(memory_store: MemoryTransactionStore):
    tx = _tx("Raced")
    memory_store.race_hashes.add(tx.hash)
    outcome = import_batch([tx], store=memory_store)
    assert (outcome.imported, outcome.skipped, outcome.errors) == (0, 1, [])


def test_lookup_failures_are_row_errors():
    class ExplodingStore(MemoryTransactionStore):
        def find_by_hash(self, tx_hash):
            raise RuntimeError("connection reset")

    outcome = import_batch([_tx("A"), _tx("B")], store=ExplodingStore())
    assert outcome.imported == 0
    assert [e.error for e in outcome.errors] == ["connection reset", "connection reset"]
    assert outcome.status == "failed"


def test_mapping_rows_validation_errors_are_recorded(memory_store: MemoryTransactionStore):
    rows = [
        {"source_id": 1, "date": "2024-01-15", "description": "", "amount": 1},
        {"source_id": 1, "date": "2024-01-15", "description": "Ok", "amount": 1},
        "not a row",
    ]
    outcome = import_batch(rows, store=memory_store)
    assert outcome.imported == 1
    assert [e.index for e in outcome.errors] == [0, 2]


@pytest.mark.parametrize("bad", [None, "rows", {"a": 1}, 42])
def test_malformed_batch_raises(bad, memory_store: MemoryTransactionStore):
    with pytest.raises(BatchInputError):
        import_batch(bad, store=memory_store)


def test_import_rows_rejects_malformed_shapes(memory_store: MemoryTransactionStore):
    with pytest.raises(BatchInputError):
        import_rows("Date,Amount", [], source_id=1, store=memory_store)
    with pytest.raises(BatchInputError):
        import_rows(HEADERS, ["2024-01-15,x,1"], source_id=1, store=memory_store)
    with pytest.raises(BatchInputError):
        import_rows(HEADERS, [], source_id=1, store=memory_store, mapping={"date": 0, "amount": 0})


def test_rules_fill_only_missing_targets(memory_store: MemoryTransactionStore):
    unit_rules = [UnitRule(1, "description", "coffee", "contains", unit_id=2)]
    category_rules = [CategoryRule(1, "description", "coffee", "contains", category_id=3)]
    rows = [_tx("Coffee Beans"), _tx("Coffee Cart", category_id=1), _tx("Rent")]

    outcome = import_batch(
        rows,
        store=memory_store,
        unit_rules=unit_rules,
        category_rules=category_rules,
        apply_rules=True,
    )

    assert outcome.imported == 3
    stored = {tx.description: tx for tx in memory_store.rows.values()}
    assert (stored["Coffee Beans"].unit_id, stored["Coffee Beans"].category_id) == (2, 3)
    assert (stored["Coffee Cart"].unit_id, stored["Coffee Cart"].category_id) == (2, 1)
    assert (stored["Rent"].unit_id, stored["Rent"].category_id) == (None, None)


def test_rules_ignored_unless_enabled(memory_store: MemoryTransactionStore):
    category_rules = [CategoryRule(1, "description", "coffee", "contains", category_id=3)]
    import_batch([_tx("Coffee")], store=memory_store, category_rules=category_rules)
    assert next(iter(memory_store.rows.values())).category_id is None


def test_import_rows_fetches_rule_snapshot_once(memory_store: MemoryTransactionStore):
    rule_store = MemoryRuleStore(
        category_rules=[
            CategoryRule(1, "source_category", "food", "exact", category_id=2),
            CategoryRule(2, "source_category", "food", "exact", category_id=3, active=False),
        ]
    )
    raw = [
        ["2024-01-15", "Coffee", "-3.50", "Food"],
        ["2024-01-16", "Bagel", "-2.00", "food"],
    ]
    outcome = import_rows(
        HEADERS, raw, source_id=1, store=memory_store, rule_store=rule_store, apply_rules=True
    )
    assert outcome.imported == 2
    assert rule_store.calls == 2
    assert {tx.category_id for tx in memory_store.rows.values()} == {2}


def test_import_rows_merges_errors_in_input_order(memory_store: MemoryTransactionStore):
    memory_store.fail_when = lambda tx: "constraint failed" if tx.description == "Bad FK" else None
    raw = [
        ["2024-01-15", "Bad FK", "1"],
        ["not a date", "Coffee", "1"],
        ["", "", ""],
        ["2024-01-15", "Good", "1"],
    ]
    outcome = import_rows(HEADERS, raw, source_id=1, store=memory_store)
    assert outcome.imported == 1
    assert [e.index for e in outcome.errors] == [0, 1]
    assert outcome.errors[0].error == "constraint failed"
    assert outcome.errors[0].row == raw[0]
    assert outcome.total == 3


def test_import_rows_with_explicit_mapping_and_config(memory_store: MemoryTransactionStore):
    headers = ["When", "What", "Out", "In"]
    raw = [["15/01/2024", "ATM", "40", ""], ["16/01/2024", "Refund", "", "12.5"]]
    outcome = import_rows(
        headers,
        raw,
        source_id=2,
        store=memory_store,
        mapping={"date": 0, "description": 1, "debit": 2, "credit": 3},
        config=NormalizerConfig(date_format="%d/%m/%Y"),
    )
    assert outcome.imported == 2
    amounts = sorted(tx.amount for tx in memory_store.rows.values())
    assert amounts == [Decimal("-40.00"), Decimal("12.50")]
    assert {tx.date for tx in memory_store.rows.values()} == {"2024-01-15", "2024-01-16"}


def test_check_duplicates(memory_store: MemoryTransactionStore):
    stored = _tx("Stored")
    memory_store.insert(stored)
    fresh = _tx("Fresh")
    result = check_duplicates([fresh.hash, stored.hash, stored.hash], store=memory_store)
    assert result == [stored.hash]
    assert check_duplicates([], store=memory_store) == []


def test_preview_rows_suggests_without_storing():
    category_rules = [CategoryRule(1, "description", "coffee", "contains", category_id=3)]
    raw = [
        ["2024-01-15", "Coffee", "-3.50"],
        ["", "", ""],
        ["bad", "Tea", "-1"],
        ["2024-01-17", "Rent", "-900"],
        ["2024-01-18", "Beyond limit", "-1"],
    ]
    preview, errors = preview_rows(
        HEADERS, raw, source_id=1, category_rules=category_rules, limit=3
    )
    assert [p.index for p in preview] == [0, 3]
    assert preview[0].suggested_category_id == 3
    assert preview[1].suggested_category_id is None
    assert [e.index for e in errors] == [2]


def test_outcome_status_and_dict():
    outcome = ImportOutcome()
    assert outcome.status == "success"
    outcome.record_error(0, ["x"], "boom")
    assert outcome.status == "failed"
    outcome.skipped = 1
    assert outcome.status == "partial"
    assert outcome.to_dict() == {
        "imported": 0,
        "skipped": 1,
        "total": 2,
        "status": "partial",
        "errors": [{"index": 0, "error": "boom"}],
    }


def test_explicit_column_mapping_object(memory_store: MemoryTransactionStore):
    mapping = ColumnMapping.from_dict({"date": 2, "description": 0, "amount": 1})
    outcome = import_rows(
        ["Payee", "Value", "Day"],
        [["Shop", "-5", "2024-02-01"]],
        source_id=1,
        store=memory_store,
        mapping=mapping,
    )
    assert outcome.imported == 1


@pytest.mark.parametrize("huge", ["1" + "0" * 30, "1e30", "9" * 17, "1e1000000"])
def test_oversized_amount_is_a_row_error(huge: str, memory_store: MemoryTransactionStore):
    raw = [["2024-01-15", "Huge", huge], ["2024-01-16", "Fine", "5"]]
    outcome = import_rows(HEADERS, raw, source_id=1, store=memory_store)
    assert outcome.imported == 1
    assert len(outcome.errors) == 1
    assert outcome.errors[0].index == 0
    assert "amount" in outcome.errors[0].error


def test_oversized_payload_amount_is_a_row_error(memory_store: MemoryTransactionStore):
    rows = [
        {"source_id": 1, "date": "2024-01-15", "description": "Huge", "amount": 1e300},
        {"source_id": 1, "date": "2024-01-15", "description": "Fine", "amount": 5},
    ]
    outcome = import_batch(rows, store=memory_store)
    assert outcome.imported == 1
    assert [e.index for e in outcome.errors] == [0]
