"""Public interface for the ``ledger_import`` package.

This module exposes the import engine's entry points and public models/types
as the stable import surface. There is no runtime logic here, only symbol
re-exports. The SQL-backed stores live in :mod:`ledger_import.storage` and
are not imported here so the pure engine works without a database library
configured.
"""

from .columns import (
    HEADER_SYNONYMS,
    ROLES,
    ColumnMapping,
    detect_columns,
    detect_debit_credit_columns,
    detect_transaction_type_column,
)
from .errors import (
    BatchInputError,
    DuplicateHashError,
    LedgerImportError,
    PersistenceError,
    RowValidationError,
    RuleConfigurationError,
)
from .fingerprint import transaction_hash
from .importer import PreviewRow, check_duplicates, import_batch, import_rows, preview_rows
from .models import ImportOutcome, NormalizedTransaction, RowError, RuleSuggestion
from .normalizers import NormalizerConfig, normalize_payload, normalize_row, normalize_rows
from .rules import (
    CategoryRule,
    RuleCandidate,
    UnitRule,
    apply_category_rules,
    apply_rules_to_transaction,
    apply_unit_rules,
    matches_pattern,
)
from .tags import merge_tags, normalize_tag, parse_tags, serialize_tags, suggest_tags

__all__ = [
    # Entry points
    "import_batch",
    "import_rows",
    "check_duplicates",
    "preview_rows",
    "PreviewRow",
    # Columns
    "ROLES",
    "HEADER_SYNONYMS",
    "ColumnMapping",
    "detect_columns",
    "detect_debit_credit_columns",
    "detect_transaction_type_column",
    # Normalization
    "NormalizerConfig",
    "normalize_row",
    "normalize_rows",
    "normalize_payload",
    "transaction_hash",
    # Rules
    "UnitRule",
    "CategoryRule",
    "RuleCandidate",
    "apply_rules_to_transaction",
    "apply_unit_rules",
    "apply_category_rules",
    "matches_pattern",
    # Tags
    "normalize_tag",
    "parse_tags",
    "serialize_tags",
    "merge_tags",
    "suggest_tags",
    # Models / types
    "NormalizedTransaction",
    "ImportOutcome",
    "RowError",
    "RuleSuggestion",
    # Errors
    "LedgerImportError",
    "RowValidationError",
    "PersistenceError",
    "DuplicateHashError",
    "RuleConfigurationError",
    "BatchInputError",
]
