"""In-memory ``TransactionStore``/``RuleStore`` fakes for engine tests.

``MemoryTransactionStore`` keeps rows in insertion order keyed by hash and
lets a test inject failures for specific descriptions, which is enough to
exercise per-row error handling without a database.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from ledger_import.errors import DuplicateHashError, PersistenceError
from ledger_import.models import NormalizedTransaction
from ledger_import.rules import CategoryRule, UnitRule


class MemoryTransactionStore:
    def __init__(self) -> None:
        self.rows: dict[str, NormalizedTransaction] = {}
        self.insert_calls: list[NormalizedTransaction] = []
        self.fail_when: Callable[[NormalizedTransaction], str | None] | None = None
        # Hashes that "another writer" inserts between lookup and insert.
        self.race_hashes: set[str] = set()

    def find_by_hash(self, tx_hash: str) -> NormalizedTransaction | None:
        return self.rows.get(tx_hash)

    def insert(self, tx: NormalizedTransaction) -> None:
        self.insert_calls.append(tx)
        if self.fail_when is not None:
            message = self.fail_when(tx)
            if message:
                raise PersistenceError(message)
        if tx.hash in self.race_hashes or tx.hash in self.rows:
            raise DuplicateHashError(tx.hash)
        self.rows[tx.hash] = tx

    def existing_hashes(self, hashes: Iterable[str]) -> set[str]:
        return {h for h in hashes if h in self.rows}


class MemoryRuleStore:
    def __init__(
        self,
        unit_rules: Iterable[UnitRule] = (),
        category_rules: Iterable[CategoryRule] = (),
    ) -> None:
        self.unit_rules = list(unit_rules)
        self.category_rules = list(category_rules)
        self.calls = 0

    def list_active_unit_rules(self) -> list[UnitRule]:
        self.calls += 1
        return [r for r in self.unit_rules if r.active]

    def list_active_category_rules(self) -> list[CategoryRule]:
        self.calls += 1
        return [r for r in self.category_rules if r.active]
