"""Exception taxonomy for the import engine.

Only :class:`BatchInputError` aborts a batch before any row is processed.
Row validation and persistence failures are recorded per row in
:class:`~ledger_import.models.ImportOutcome` and the batch continues.
Duplicates are not errors at all; they are counted as ``skipped``.
"""

from __future__ import annotations


class LedgerImportError(Exception):
    """Base class for errors raised by ``ledger_import``."""


class RowValidationError(LedgerImportError, ValueError):
    """A single row failed normalization (empty description, bad amount, ...)."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class PersistenceError(LedgerImportError):
    """The storage collaborator rejected a row."""


class DuplicateHashError(PersistenceError):
    """Insert lost a race against another insert carrying the same hash.

    Raised by stores that enforce a uniqueness constraint on ``hash``. The
    orchestrator counts it as a skip rather than a failure.
    """

    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"transaction with hash {tx_hash} already exists")
        self.tx_hash = tx_hash


class RuleConfigurationError(LedgerImportError, ValueError):
    """A rule cannot be saved: unknown match/rule type or invalid regex."""


class BatchInputError(LedgerImportError, TypeError):
    """The batch input as a whole is malformed."""


__all__ = [
    "LedgerImportError",
    "RowValidationError",
    "PersistenceError",
    "DuplicateHashError",
    "RuleConfigurationError",
    "BatchInputError",
]
