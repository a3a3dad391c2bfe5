# ruff: noqa: I001
"""Storage collaborators for the import engine.

The orchestrator only depends on the two small protocols defined here.
``SqlTransactionStore`` and ``SqlRuleStore`` implement them on top of the
SQLAlchemy models in ``db.models.ledger`` and a caller-owned ``Session``;
they flush but never commit, so transaction boundaries stay with the caller
(typically :func:`db.client.session_scope`).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Literal, Protocol, runtime_checkable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from db.models.ledger import CategoryRuleRow, ImportLogRow, LedgerTransaction, UnitRuleRow
from .errors import DuplicateHashError, PersistenceError, RuleConfigurationError
from .logging_setup import get_logger
from .models import ImportOutcome, NormalizedTransaction
from .rules import CategoryRule, UnitRule
from .tags import split_stored_tags

logger = get_logger("ledger_import.storage")

# Keep IN (...) lists well under SQLite's bound-parameter limit.
_HASH_CHUNK = 500

type RuleKind = Literal["unit", "category"]


@runtime_checkable
class TransactionStore(Protocol):
    def find_by_hash(self, tx_hash: str) -> NormalizedTransaction | None: ...

    def insert(self, tx: NormalizedTransaction) -> None: ...

    def existing_hashes(self, hashes: Iterable[str]) -> set[str]: ...


@runtime_checkable
class RuleStore(Protocol):
    def list_active_unit_rules(self) -> list[UnitRule]: ...

    def list_active_category_rules(self) -> list[CategoryRule]: ...


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def _row_to_model(row: LedgerTransaction) -> NormalizedTransaction:
    return NormalizedTransaction(
        source_id=row.source_id,
        unit_id=row.unit_id,
        date=row.date,
        description=row.description,
        amount=row.amount,
        source_category=row.source_category,
        category_id=row.category_id,
        ignore=row.ignore,
        notes=row.notes,
        tags=row.tags,
        source_data=row.source_data,
    )


class SqlTransactionStore:
    """``TransactionStore`` backed by the ``ledger_transactions`` table."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_hash(self, tx_hash: str) -> NormalizedTransaction | None:
        row = self.session.scalars(
            select(LedgerTransaction).where(LedgerTransaction.hash == tx_hash)
        ).first()
        return _row_to_model(row) if row is not None else None

    def insert(self, tx: NormalizedTransaction) -> None:
        """Insert one transaction inside a SAVEPOINT.

        A failed insert rolls back only its own savepoint, so earlier rows of
        the batch stay pending in the caller's transaction.

        Raises
        ------
        DuplicateHashError
            The unique ``hash`` constraint fired (another writer got there first).
        PersistenceError
            Any other database failure; the message carries the driver's text.
        """

        row = LedgerTransaction(
            source_id=tx.source_id,
            unit_id=tx.unit_id,
            date=tx.date,
            description=tx.description,
            amount=tx.amount,
            source_category=tx.source_category,
            category_id=tx.category_id,
            ignore=tx.ignore,
            notes=tx.notes,
            tags=tx.tags,
            source_data=tx.source_data,
            hash=tx.hash,
        )
        try:
            with self.session.begin_nested():
                self.session.add(row)
                self.session.flush()
        except IntegrityError as exc:
            if self.find_by_hash(tx.hash) is not None:
                raise DuplicateHashError(tx.hash) from exc
            raise PersistenceError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError(str(exc)) from exc

    def existing_hashes(self, hashes: Iterable[str]) -> set[str]:
        wanted = list(dict.fromkeys(hashes))
        found: set[str] = set()
        for start in range(0, len(wanted), _HASH_CHUNK):
            chunk = wanted[start : start + _HASH_CHUNK]
            found.update(
                self.session.scalars(
                    select(LedgerTransaction.hash).where(LedgerTransaction.hash.in_(chunk))
                )
            )
        return found

    def known_tags(self) -> list[str]:
        """All tags used by stored transactions, sorted; feeds ``suggest_tags``."""

        stmt = (
            select(LedgerTransaction.tags).where(LedgerTransaction.tags.is_not(None)).distinct()
        )
        tags: set[str] = set()
        for value in self.session.scalars(stmt):
            tags.update(split_stored_tags(value))
        return sorted(tags)

    def log_import(
        self,
        outcome: ImportOutcome,
        *,
        source_id: int,
        file_name: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> int:
        """Record a batch summary in ``ledger_import_log`` and return its id."""

        details: dict[str, Any] = dict(metadata or {})
        if outcome.errors:
            details.setdefault(
                "errors", [{"index": e.index, "error": e.error} for e in outcome.errors]
            )
        row = ImportLogRow(
            source_id=source_id,
            file_name=file_name,
            row_count=outcome.total,
            imported_count=outcome.imported,
            skipped_count=outcome.skipped,
            error_count=len(outcome.errors),
            status=outcome.status,
            details=details or None,
        )
        self.session.add(row)
        self.session.flush()
        logger.info(
            "Logged import id=%s source_id=%s status=%s", row.id, source_id, outcome.status
        )
        return row.id


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _to_unit_rule(row: UnitRuleRow) -> UnitRule:
    return UnitRule(
        id=row.id,
        rule_type=row.rule_type,  # type: ignore[arg-type]
        pattern=row.pattern,
        match_type=row.match_type,  # type: ignore[arg-type]
        unit_id=row.unit_id,
        priority=row.priority,
        active=row.active,
    )


def _to_category_rule(row: CategoryRuleRow) -> CategoryRule:
    return CategoryRule(
        id=row.id,
        rule_type=row.rule_type,  # type: ignore[arg-type]
        pattern=row.pattern,
        match_type=row.match_type,  # type: ignore[arg-type]
        category_id=row.category_id,
        priority=row.priority,
        active=row.active,
    )


def _rule_model(kind: str) -> type[UnitRuleRow] | type[CategoryRuleRow]:
    if kind == "unit":
        return UnitRuleRow
    if kind == "category":
        return CategoryRuleRow
    raise RuleConfigurationError(f"unknown rule kind {kind!r}; expected 'unit' or 'category'")


class SqlRuleStore:
    """``RuleStore`` backed by ``ledger_unit_rules``/``ledger_category_rules``.

    Rules are validated (including regex compilation) before they are
    written, so a stored rule can always be loaded back.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def list_active_unit_rules(self) -> list[UnitRule]:
        rows = self.session.scalars(
            select(UnitRuleRow)
            .where(UnitRuleRow.active.is_(True))
            .order_by(UnitRuleRow.priority, UnitRuleRow.id)
        )
        return [_to_unit_rule(r) for r in rows]

    def list_active_category_rules(self) -> list[CategoryRule]:
        rows = self.session.scalars(
            select(CategoryRuleRow)
            .where(CategoryRuleRow.active.is_(True))
            .order_by(CategoryRuleRow.priority, CategoryRuleRow.id)
        )
        return [_to_category_rule(r) for r in rows]

    def add_unit_rule(
        self,
        *,
        rule_type: str,
        pattern: str,
        match_type: str,
        unit_id: int,
        priority: int = 0,
        active: bool = True,
    ) -> UnitRule:
        # Construct once up front so invalid input never reaches the table.
        UnitRule(  # type: ignore[arg-type]
            0, rule_type, pattern, match_type, unit_id, priority, active
        )
        row = UnitRuleRow(
            rule_type=rule_type,
            pattern=pattern,
            match_type=match_type,
            unit_id=unit_id,
            priority=priority,
            active=active,
        )
        self.session.add(row)
        self.session.flush()
        return _to_unit_rule(row)

    def add_category_rule(
        self,
        *,
        rule_type: str,
        pattern: str,
        match_type: str,
        category_id: int,
        priority: int = 0,
        active: bool = True,
    ) -> CategoryRule:
        CategoryRule(  # type: ignore[arg-type]
            0, rule_type, pattern, match_type, category_id, priority, active
        )
        row = CategoryRuleRow(
            rule_type=rule_type,
            pattern=pattern,
            match_type=match_type,
            category_id=category_id,
            priority=priority,
            active=active,
        )
        self.session.add(row)
        self.session.flush()
        return _to_category_rule(row)

    def set_active(self, kind: RuleKind, rule_id: int, active: bool) -> None:
        """Toggle a rule on or off."""

        model = _rule_model(kind)
        result = self.session.execute(
            update(model).where(model.id == rule_id).values(active=active)
        )
        if result.rowcount == 0:
            raise PersistenceError(f"{kind} rule {rule_id} not found")

    def set_priorities(self, kind: RuleKind, priorities: Mapping[int, int]) -> None:
        """Bulk-assign priorities (``{rule_id: priority}``), e.g. after a reorder."""

        model = _rule_model(kind)
        for rule_id, priority in priorities.items():
            if isinstance(priority, bool) or not isinstance(priority, int) or priority < 0:
                raise RuleConfigurationError(
                    f"priority must be a non-negative integer, got {priority!r}"
                )
            result = self.session.execute(
                update(model).where(model.id == rule_id).values(priority=priority)
            )
            if result.rowcount == 0:
                raise PersistenceError(f"{kind} rule {rule_id} not found")


__all__ = [
    "TransactionStore",
    "RuleStore",
    "SqlTransactionStore",
    "SqlRuleStore",
]
