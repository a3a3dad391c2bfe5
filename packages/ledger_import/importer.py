"""Import orchestration: normalize, dedupe, classify, persist.

The orchestrator walks a batch strictly in order. For every row it

1. skips it when a transaction with the same hash is already stored,
2. optionally fills a missing ``unit_id``/``category_id`` from rule
   snapshots,
3. hands it to the store.

Validation and persistence failures never abort the batch; they are recorded
as :class:`~ledger_import.models.RowError` entries with the cause text. A
store that loses a uniqueness race raises
:class:`~ledger_import.errors.DuplicateHashError`, which counts as a skip.
Only :class:`~ledger_import.errors.BatchInputError` (the batch itself is
malformed) is raised to the caller.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .columns import ColumnMapping, detect_columns
from .errors import BatchInputError, DuplicateHashError, RowValidationError
from .logging_setup import get_logger
from .models import ImportOutcome, NormalizedTransaction, RowError
from .normalizers import NormalizerConfig, is_blank_row, normalize_payload, normalize_rows
from .rules import CategoryRule, UnitRule, apply_rules_to_transaction

if TYPE_CHECKING:
    from .storage import RuleStore, TransactionStore

logger = get_logger("ledger_import.importer")


def _apply_rules(
    tx: NormalizedTransaction,
    unit_rules: Sequence[UnitRule],
    category_rules: Sequence[CategoryRule],
) -> NormalizedTransaction:
    if tx.unit_id is not None and tx.category_id is not None:
        return tx
    suggestion = apply_rules_to_transaction(
        tx, unit_rules=unit_rules, category_rules=category_rules
    )
    update: dict[str, Any] = {}
    if tx.unit_id is None and suggestion.unit_id is not None:
        update["unit_id"] = suggestion.unit_id
    if tx.category_id is None and suggestion.category_id is not None:
        update["category_id"] = suggestion.category_id
    return tx.model_copy(update=update) if update else tx


def _process_one(
    tx: NormalizedTransaction,
    *,
    index: int,
    row: Any,
    store: TransactionStore,
    unit_rules: Sequence[UnitRule],
    category_rules: Sequence[CategoryRule],
    apply_rules: bool,
    outcome: ImportOutcome,
) -> None:
    try:
        if store.find_by_hash(tx.hash) is not None:
            logger.debug("Row %d: duplicate hash %s, skipping", index, tx.hash)
            outcome.skipped += 1
            return
        if apply_rules:
            tx = _apply_rules(tx, unit_rules, category_rules)
        store.insert(tx)
    except DuplicateHashError:
        logger.debug("Row %d: hash %s inserted concurrently, skipping", index, tx.hash)
        outcome.skipped += 1
        return
    except Exception as exc:  # noqa: BLE001
        logger.warning("Row %d failed: %s", index, exc)
        outcome.record_error(index, row, str(exc))
        return
    outcome.imported += 1


def import_batch(
    rows: Sequence[NormalizedTransaction | Mapping[str, Any]],
    *,
    store: TransactionStore,
    unit_rules: Sequence[UnitRule] = (),
    category_rules: Sequence[CategoryRule] = (),
    apply_rules: bool = False,
    config: NormalizerConfig | None = None,
) -> ImportOutcome:
    """Import already-structured rows and report what happened to each.

    Parameters
    ----------
    rows:
        ``NormalizedTransaction`` instances, or mappings in the API shape
        (snake_case or camelCase keys), which are normalized first.
    store:
        The transaction store; it is consulted by hash before every insert.
    unit_rules, category_rules:
        Rule snapshots used when ``apply_rules`` is true. Only a missing
        ``unit_id``/``category_id`` is filled; explicit values are kept.

    Raises
    ------
    BatchInputError
        ``rows`` is not a list/tuple.
    """

    if isinstance(rows, (str, bytes)) or not isinstance(rows, (list, tuple)):
        raise BatchInputError(f"rows must be a list, got {type(rows).__name__}")

    unit_snapshot = list(unit_rules)
    category_snapshot = list(category_rules)
    outcome = ImportOutcome()
    logger.info("Importing batch of %d rows (apply_rules=%s)", len(rows), apply_rules)

    for index, row in enumerate(rows):
        if isinstance(row, NormalizedTransaction):
            tx = row
        elif isinstance(row, Mapping):
            try:
                tx = normalize_payload(row, config=config)
            except RowValidationError as exc:
                logger.warning("Row %d failed: %s", index, exc)
                outcome.record_error(index, row, str(exc))
                continue
        else:
            outcome.record_error(index, row, f"unsupported row type: {type(row).__name__}")
            continue
        _process_one(
            tx,
            index=index,
            row=row,
            store=store,
            unit_rules=unit_snapshot,
            category_rules=category_snapshot,
            apply_rules=apply_rules,
            outcome=outcome,
        )

    logger.info(
        "Batch done: imported=%d skipped=%d errors=%d status=%s",
        outcome.imported,
        outcome.skipped,
        len(outcome.errors),
        outcome.status,
    )
    return outcome


def _check_raw_shape(headers: Any, raw_rows: Any) -> None:
    if isinstance(headers, (str, bytes)) or not isinstance(headers, Sequence):
        raise BatchInputError("headers must be a sequence of strings")
    if isinstance(raw_rows, (str, bytes)) or not isinstance(raw_rows, Sequence):
        raise BatchInputError("rows must be a sequence of row sequences")
    for i, row in enumerate(raw_rows):
        if isinstance(row, (str, bytes)) or not isinstance(row, Sequence):
            raise BatchInputError(f"row {i} is not a sequence of cells")


def _resolve_mapping(
    headers: Sequence[str], mapping: ColumnMapping | Mapping[str, Any] | None
) -> ColumnMapping:
    if mapping is None:
        return detect_columns(headers)
    if isinstance(mapping, ColumnMapping):
        return mapping
    try:
        return ColumnMapping.from_dict(mapping)
    except ValueError as exc:
        raise BatchInputError(f"invalid column mapping: {exc}") from exc


def import_rows(
    headers: Sequence[str],
    raw_rows: Sequence[Sequence[Any]],
    *,
    source_id: int,
    store: TransactionStore,
    mapping: ColumnMapping | Mapping[str, Any] | None = None,
    config: NormalizerConfig | None = None,
    rule_store: RuleStore | None = None,
    apply_rules: bool = False,
) -> ImportOutcome:
    """Batch entry point for raw spreadsheet rows.

    Auto-detects the column mapping when none is given, normalizes every row,
    then imports the valid ones. Rule snapshots are read once from
    ``rule_store``. Row indices in ``errors`` refer to ``raw_rows`` and the
    list is in input order.
    """

    _check_raw_shape(headers, raw_rows)
    resolved = _resolve_mapping(headers, mapping)

    valid, invalid = normalize_rows(
        raw_rows, resolved, source_id=source_id, headers=headers, config=config
    )
    for err in invalid:
        logger.warning("Row %d failed: %s", err.index, err.error)

    unit_rules: list[UnitRule] = []
    category_rules: list[CategoryRule] = []
    if apply_rules and rule_store is not None:
        unit_rules = rule_store.list_active_unit_rules()
        category_rules = rule_store.list_active_category_rules()

    outcome = ImportOutcome()
    logger.info(
        "Importing %d rows for source_id=%s (%d failed normalization)",
        len(raw_rows),
        source_id,
        len(invalid),
    )
    for index, tx in valid:
        _process_one(
            tx,
            index=index,
            row=list(raw_rows[index]),
            store=store,
            unit_rules=unit_rules,
            category_rules=category_rules,
            apply_rules=apply_rules,
            outcome=outcome,
        )

    outcome.errors = sorted([*invalid, *outcome.errors], key=lambda e: e.index)
    logger.info(
        "Batch done: imported=%d skipped=%d errors=%d status=%s",
        outcome.imported,
        outcome.skipped,
        len(outcome.errors),
        outcome.status,
    )
    return outcome


def check_duplicates(hashes: Iterable[str], *, store: TransactionStore) -> list[str]:
    """Return the input hashes that are already stored, deduped, in input order."""

    wanted = list(dict.fromkeys(hashes))
    if not wanted:
        return []
    existing = store.existing_hashes(wanted)
    return [h for h in wanted if h in existing]


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PreviewRow:
    """One row of a dry-run preview with rule suggestions applied."""

    index: int
    transaction: NormalizedTransaction
    suggested_unit_id: int | None
    suggested_category_id: int | None


def preview_rows(
    headers: Sequence[str],
    raw_rows: Sequence[Sequence[Any]],
    *,
    source_id: int,
    mapping: ColumnMapping | Mapping[str, Any] | None = None,
    config: NormalizerConfig | None = None,
    unit_rules: Sequence[UnitRule] = (),
    category_rules: Sequence[CategoryRule] = (),
    limit: int | None = 10,
) -> tuple[list[PreviewRow], list[RowError]]:
    """Normalize the first ``limit`` non-blank rows without touching storage."""

    _check_raw_shape(headers, raw_rows)
    resolved = _resolve_mapping(headers, mapping)

    picked: list[int] = []
    for i, row in enumerate(raw_rows):
        if limit is not None and len(picked) >= limit:
            break
        if not is_blank_row(row):
            picked.append(i)

    valid, invalid = normalize_rows(
        [raw_rows[i] for i in picked],
        resolved,
        source_id=source_id,
        headers=headers,
        config=config,
    )
    errors = [RowError(index=picked[e.index], row=e.row, error=e.error) for e in invalid]
    preview: list[PreviewRow] = []
    for index, tx in valid:
        suggestion = apply_rules_to_transaction(
            tx, unit_rules=unit_rules, category_rules=category_rules
        )
        preview.append(
            PreviewRow(
                index=picked[index],
                transaction=tx,
                suggested_unit_id=suggestion.unit_id,
                suggested_category_id=suggestion.category_id,
            )
        )
    return preview, errors


__all__ = [
    "import_batch",
    "import_rows",
    "check_duplicates",
    "PreviewRow",
    "preview_rows",
]
