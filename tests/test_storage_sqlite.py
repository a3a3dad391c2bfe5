from decimal import Decimal

import pytest
from db.client import session_scope
from db.models.ledger import ImportLogRow, LedgerTransaction
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_import.errors import DuplicateHashError, PersistenceError, RuleConfigurationError
from ledger_import.importer import check_duplicates, import_batch, import_rows
from ledger_import.models import NormalizedTransaction
from ledger_import.storage import RuleStore, SqlRuleStore, SqlTransactionStore, TransactionStore


def _tx(description: str, *, source_id: int = 1, amount="-12.34", **extra):
    return NormalizedTransaction(
        source_id=source_id, date="2024-01-15", description=description, amount=amount, **extra
    )


def test_sql_stores_satisfy_protocols(db_session: Session):
    assert isinstance(SqlTransactionStore(db_session), TransactionStore)
    assert isinstance(SqlRuleStore(db_session), RuleStore)


def test_insert_and_find_by_hash_round_trip(db_session: Session):
    store = SqlTransactionStore(db_session)
    tx = _tx("Coffee", tags="Morning, Coffee", notes="latte", source_data={"Amount": "-12.34"})
    store.insert(tx)

    found = store.find_by_hash(tx.hash)
    assert found is not None
    assert found.hash == tx.hash
    assert found.amount == Decimal("-12.34")
    assert found.tags == "morning,coffee"
    assert found.source_data == {"Amount": "-12.34"}
    assert store.find_by_hash("0" * 16) is None


def test_unique_hash_violation_maps_to_duplicate_error(db_session: Session):
    store = SqlTransactionStore(db_session)
    tx = _tx("Coffee")
    store.insert(tx)
    with pytest.raises(DuplicateHashError):
        store.insert(tx)
    # The failed savepoint must not roll back the earlier insert.
    assert store.find_by_hash(tx.hash) is not None


def test_foreign_key_violation_is_persistence_error(db_session: Session):
    store = SqlTransactionStore(db_session)
    with pytest.raises(PersistenceError) as ei:
        store.insert(_tx("Unknown source", source_id=999))
    assert not isinstance(ei.value, DuplicateHashError)
    assert "FOREIGN KEY" in str(ei.value)


def test_batch_with_bad_row_keeps_good_rows(sqlite_url: str):
    with session_scope(database_url=sqlite_url) as session:
        outcome = import_batch(
            [_tx("Bad", source_id=999), _tx("Good")], store=SqlTransactionStore(session)
        )
    assert outcome.imported == 1
    assert len(outcome.errors) == 1
    assert "FOREIGN KEY" in outcome.errors[0].error

    with session_scope(database_url=sqlite_url) as session:
        count = session.scalar(select(func.count()).select_from(LedgerTransaction))
    assert count == 1


def test_reimport_against_sqlite_is_idempotent(sqlite_url: str):
    headers = ["Date", "Description", "Amount"]
    raw = [["2024-01-15", "SALARY PAYMENT", "3000"], ["2024-01-16", "Rent", "-1200"]]

    with session_scope(database_url=sqlite_url) as session:
        first = import_rows(headers, raw, source_id=1, store=SqlTransactionStore(session))
    with session_scope(database_url=sqlite_url) as session:
        second = import_rows(headers, raw, source_id=1, store=SqlTransactionStore(session))

    assert (first.imported, first.skipped) == (2, 0)
    assert (second.imported, second.skipped) == (0, 2)


def test_existing_hashes_and_check_duplicates(db_session: Session):
    store = SqlTransactionStore(db_session)
    kept = [_tx(f"Row {i}") for i in range(3)]
    for tx in kept:
        store.insert(tx)
    lookup = [kept[1].hash, _tx("Never stored").hash, kept[0].hash]
    assert store.existing_hashes(lookup) == {kept[0].hash, kept[1].hash}
    assert check_duplicates(lookup, store=store) == [kept[1].hash, kept[0].hash]


def test_log_import_records_status_and_errors(db_session: Session):
    store = SqlTransactionStore(db_session)
    store.insert(_tx("Existing"))
    outcome = import_batch([_tx("Existing"), _tx("New"), _tx("Bad", source_id=999)], store=store)

    log_id = store.log_import(outcome, source_id=1, file_name="jan.csv", metadata={"k": "v"})
    row = db_session.get(ImportLogRow, log_id)
    assert row is not None
    assert (row.row_count, row.imported_count, row.skipped_count, row.error_count) == (3, 1, 1, 1)
    assert row.status == "partial"
    assert row.file_name == "jan.csv"
    assert row.details["k"] == "v"
    assert row.details["errors"][0]["index"] == 2


def test_rule_store_lifecycle(db_session: Session):
    rules = SqlRuleStore(db_session)
    first = rules.add_category_rule(
        rule_type="description", pattern="coffee", match_type="contains", category_id=3, priority=1
    )
    second = rules.add_category_rule(
        rule_type="description", pattern="^coffee", match_type="regex", category_id=2, priority=2
    )
    unit = rules.add_unit_rule(rule_type="source", pattern="1", match_type="exact", unit_id=1)

    assert [r.id for r in rules.list_active_category_rules()] == [first.id, second.id]
    assert [r.unit_id for r in rules.list_active_unit_rules()] == [unit.unit_id]

    rules.set_active("category", first.id, False)
    assert [r.id for r in rules.list_active_category_rules()] == [second.id]
    rules.set_active("category", first.id, True)

    rules.set_priorities("category", {first.id: 5, second.id: 0})
    assert [r.id for r in rules.list_active_category_rules()] == [second.id, first.id]


def test_rule_store_rejects_invalid_rules(db_session: Session):
    rules = SqlRuleStore(db_session)
    with pytest.raises(RuleConfigurationError):
        rules.add_category_rule(
            rule_type="description", pattern="(", match_type="regex", category_id=1
        )
    with pytest.raises(RuleConfigurationError):
        rules.set_active("vendor", 1, True)  # type: ignore[arg-type]
    with pytest.raises(RuleConfigurationError):
        rules.set_priorities("unit", {1: -3})
    with pytest.raises(PersistenceError):
        rules.set_active("unit", 12345, False)
    assert rules.list_active_category_rules() == []


def test_known_tags_reads_back_stored_tag_columns(db_session: Session):
    store = SqlTransactionStore(db_session)
    store.insert(_tx("Hotel", tags="Work Trip, travel"))
    store.insert(_tx("Taxi", tags="travel,client"))
    store.insert(_tx("Coffee"))
    assert store.known_tags() == ["client", "travel", "work-trip"]
