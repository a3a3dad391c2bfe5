"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ledger models used by ``ledger_import``.
"""

from .ledger import (
    Base,
    CategoryRuleRow,
    ImportLogRow,
    LedgerCategory,
    LedgerSource,
    LedgerTransaction,
    LedgerUnit,
    UnitRuleRow,
)

__all__ = [
    "Base",
    "LedgerSource",
    "LedgerUnit",
    "LedgerCategory",
    "LedgerTransaction",
    "UnitRuleRow",
    "CategoryRuleRow",
    "ImportLogRow",
]
