"""Raw spreadsheet rows → :class:`~ledger_import.models.NormalizedTransaction`.

The normalizer reads cells through a :class:`~ledger_import.columns.ColumnMapping`,
coerces dates and amounts, normalizes tags, and lets the model compute the
fingerprint. Every failure is raised as :class:`RowValidationError` so the
orchestrator can record it against the row and move on.

Dates are never guessed. ``03/04/2024`` means different days in different
locales, so non-ISO strings require an explicit per-source ``date_format``
(a ``strptime`` pattern) in :class:`NormalizerConfig`.

Debit/credit sign conventions are policy as well: ``type_signs`` maps a
transaction-type label to ``-1`` or ``+1``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError

from .columns import ColumnMapping
from .errors import RowValidationError
from .models import MAX_DESCRIPTION_LENGTH, NormalizedTransaction, RowError

DEFAULT_TYPE_SIGNS: dict[str, int] = {"debit": -1, "credit": 1}

_CURRENCY_SYMBOLS = "$£€¥"
# Digits before the decimal point that the ledger column can hold.
_MAX_INTEGER_DIGITS = 16
_ISO_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:[T ].*)?$")


@dataclass(frozen=True, slots=True)
class NormalizerConfig:
    """Per-source normalization settings.

    Attributes
    ----------
    date_format:
        ``strptime`` pattern for non-ISO date strings (e.g. ``"%m/%d/%Y"``).
        When ``None`` only ISO ``YYYY-MM-DD`` strings (optionally followed by
        a time) and real ``date``/``datetime`` values are accepted.
    type_signs:
        Transaction-type label (case-insensitive) → sign multiplier, used when
        a ``transaction_type`` column is mapped.
    reverse_amounts:
        Flip every amount's sign, for card exports that report purchases as
        positive numbers.
    decimal_separator:
        ``"."`` or ``","`` to pin the decimal mark; ``None`` infers it from the
        separators present in each value.
    max_description_length:
        Upper bound on description length.
    """

    date_format: str | None = None
    type_signs: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_TYPE_SIGNS))
    reverse_amounts: bool = False
    decimal_separator: str | None = None
    max_description_length: int = MAX_DESCRIPTION_LENGTH

    def __post_init__(self) -> None:
        if self.decimal_separator not in (None, ".", ","):
            raise ValueError(
                f"decimal_separator must be '.', ',' or None, got {self.decimal_separator!r}"
            )
        for label, sign in self.type_signs.items():
            if sign not in (-1, 1):
                raise ValueError(f"type_signs[{label!r}] must be -1 or 1, got {sign!r}")

    def sign_for(self, label: str) -> int | None:
        wanted = label.strip().casefold()
        for key, sign in self.type_signs.items():
            if key.strip().casefold() == wanted:
                return sign
        return None


_DEFAULT_CONFIG = NormalizerConfig()


# ---------------------------------------------------------------------------
# Amount parsing
# ---------------------------------------------------------------------------


def parse_amount(raw: Any, *, decimal_separator: str | None = None) -> Decimal:
    """Parse a money value into a finite ``Decimal``.

    Handles leading ``+``/``-``, currency symbols, parentheses for negatives
    (``"($1,234.56)"``), internal spaces, and thousands separators. With no
    pinned ``decimal_separator`` the mark is inferred: when both ``.`` and
    ``,`` appear the last one is the decimal mark; a lone comma is a decimal
    comma; repeated separators are thousands separators.
    """

    if raw is None:
        raise ValueError("amount is required")
    if isinstance(raw, bool):
        raise ValueError(f"invalid amount: {raw!r}")
    if isinstance(raw, Decimal):
        d = raw
    elif isinstance(raw, (int, float)):
        d = Decimal(str(raw))
    else:
        d = _parse_amount_text(str(raw), decimal_separator)
    if not d.is_finite():
        raise ValueError(f"amount must be a finite number: {raw!r}")
    if d and d.adjusted() >= _MAX_INTEGER_DIGITS:
        raise ValueError(f"amount out of range: {raw!r}")
    return d


def _parse_amount_text(raw: str, decimal_separator: str | None) -> Decimal:
    s = raw.strip()
    if not s:
        raise ValueError("amount is empty")
    negative = False

    # Strip sign, currency and parentheses in any order until stable, so
    # "-($1,234.56)" and "$(1,234.56)" both work.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s and s[0] in _CURRENCY_SYMBOLS:
            s = s[1:].lstrip()
            changed = True
        if s and s[-1] in _CURRENCY_SYMBOLS:
            s = s[:-1].rstrip()
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break

    s = "".join(s.split())
    s = _normalize_separators(s, decimal_separator)
    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    return d.copy_abs().copy_negate() if negative and d else d


def _normalize_separators(s: str, decimal_separator: str | None) -> str:
    if decimal_separator == ".":
        return s.replace(",", "")
    if decimal_separator == ",":
        return s.replace(".", "").replace(",", ".")

    dots = s.count(".")
    commas = s.count(",")
    if dots and commas:
        if s.rfind(",") > s.rfind("."):
            return s.replace(".", "").replace(",", ".")
        return s.replace(",", "")
    if commas == 1:
        return s.replace(",", ".")
    if commas > 1:
        return s.replace(",", "")
    if dots > 1:
        return s.replace(".", "")
    return s


# ---------------------------------------------------------------------------
# Date coercion
# ---------------------------------------------------------------------------


def coerce_date(value: Any, *, date_format: str | None = None) -> str:
    """Return ``value`` as ``YYYY-MM-DD`` or raise :class:`RowValidationError`."""

    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if value is None or not str(value).strip():
        raise RowValidationError("date is empty", field="date")

    s = str(value).strip()
    if date_format:
        # Some exports append a time ("12/30/2024 10:15"); retry on the first token.
        for candidate in dict.fromkeys((s, s.split()[0])):
            try:
                return datetime.strptime(candidate, date_format).date().isoformat()
            except ValueError:
                continue
        raise RowValidationError(
            f"date {s!r} does not match format {date_format!r}", field="date"
        )

    m = _ISO_PREFIX_RE.match(s)
    if m:
        try:
            return date.fromisoformat(m.group(1)).isoformat()
        except ValueError as exc:
            raise RowValidationError(f"invalid date: {s!r}", field="date") from exc
    raise RowValidationError(
        f"date {s!r} is not ISO (YYYY-MM-DD); configure a date_format for this source",
        field="date",
    )


# ---------------------------------------------------------------------------
# Row normalization
# ---------------------------------------------------------------------------


def _cell(cells: Sequence[Any], column: int | None) -> Any:
    if column is None or column >= len(cells):
        return None
    value = cells[column]
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _text(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _amount_or_error(raw: Any, config: NormalizerConfig, *, field_name: str) -> Decimal:
    try:
        return parse_amount(raw, decimal_separator=config.decimal_separator)
    except ValueError as exc:
        raise RowValidationError(str(exc), field=field_name) from exc


def resolve_amount(
    cells: Sequence[Any], mapping: ColumnMapping, config: NormalizerConfig = _DEFAULT_CONFIG
) -> Decimal:
    """Combine the mapped amount columns into one signed amount.

    Precedence: ``transaction_type`` + ``amount`` (sign from the type label),
    then a single ``amount``, then ``debit``/``credit`` (debit negative, credit
    positive, netted when both are filled).
    """

    amount_raw = _cell(cells, mapping.get("amount"))
    type_col = mapping.get("transaction_type")

    if type_col is not None and mapping.is_mapped("amount"):
        label = _text(_cell(cells, type_col))
        if label is None:
            raise RowValidationError("transaction type is empty", field="transaction_type")
        sign = config.sign_for(label)
        if sign is None:
            raise RowValidationError(
                f"unknown transaction type {label!r}", field="transaction_type"
            )
        amount = abs(_amount_or_error(amount_raw, config, field_name="amount")) * sign
    elif mapping.is_mapped("amount"):
        amount = _amount_or_error(amount_raw, config, field_name="amount")
    elif mapping.is_mapped("debit") or mapping.is_mapped("credit"):
        debit_raw = _cell(cells, mapping.get("debit"))
        credit_raw = _cell(cells, mapping.get("credit"))
        if debit_raw is None and credit_raw is None:
            raise RowValidationError("neither debit nor credit has a value", field="amount")
        amount = Decimal(0)
        if debit_raw is not None:
            amount -= abs(_amount_or_error(debit_raw, config, field_name="debit"))
        if credit_raw is not None:
            amount += abs(_amount_or_error(credit_raw, config, field_name="credit"))
    else:
        raise RowValidationError("amount column is not mapped", field="amount")

    return -amount if config.reverse_amounts else amount


def is_blank_row(cells: Sequence[Any]) -> bool:
    return all(_text(c) is None for c in cells)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = str(err.get("msg", "invalid value"))
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def _build(payload: dict[str, Any]) -> NormalizedTransaction:
    try:
        return NormalizedTransaction.model_validate(payload)
    except ValidationError as exc:
        first_loc = exc.errors()[0].get("loc", ()) if exc.errors() else ()
        field_name = str(first_loc[0]) if first_loc else None
        raise RowValidationError(_validation_message(exc), field=field_name) from exc


def normalize_row(
    cells: Sequence[Any],
    mapping: ColumnMapping,
    *,
    source_id: int,
    headers: Sequence[str] | None = None,
    config: NormalizerConfig | None = None,
) -> NormalizedTransaction:
    """Normalize one spreadsheet row.

    Raises
    ------
    RowValidationError
        When a required role is unmapped, the description is empty or too
        long, the date cannot be read, or the amount is not a finite number.
    """

    cfg = config or _DEFAULT_CONFIG

    missing = mapping.missing_required()
    if missing:
        raise RowValidationError(
            f"required column not mapped: {', '.join(missing)}", field=missing[0]
        )

    description = _text(_cell(cells, mapping.get("description")))
    if description is None:
        raise RowValidationError("description is empty", field="description")
    if len(description) > cfg.max_description_length:
        raise RowValidationError(
            f"description exceeds {cfg.max_description_length} characters",
            field="description",
        )

    tx_date = coerce_date(_cell(cells, mapping.get("date")), date_format=cfg.date_format)
    amount = resolve_amount(cells, mapping, cfg)

    source_data = None
    if headers is not None:
        source_data = {
            str(h): (cells[i] if i < len(cells) else None) for i, h in enumerate(headers)
        }

    return _build(
        {
            "source_id": source_id,
            "date": tx_date,
            "description": description,
            "amount": amount,
            "source_category": _text(_cell(cells, mapping.get("source_category"))),
            "notes": _text(_cell(cells, mapping.get("notes"))),
            "tags": _text(_cell(cells, mapping.get("tags"))),
            "source_data": source_data,
        }
    )


def normalize_rows(
    rows: Iterable[Sequence[Any]],
    mapping: ColumnMapping,
    *,
    source_id: int,
    headers: Sequence[str] | None = None,
    config: NormalizerConfig | None = None,
) -> tuple[list[tuple[int, NormalizedTransaction]], list[RowError]]:
    """Normalize many rows, collecting failures instead of raising.

    Returns ``(transactions, errors)`` where each transaction is paired with
    its 0-based row index. Blank rows are skipped and produce neither.
    """

    transactions: list[tuple[int, NormalizedTransaction]] = []
    errors: list[RowError] = []
    for index, cells in enumerate(rows):
        if is_blank_row(cells):
            continue
        try:
            tx = normalize_row(
                cells, mapping, source_id=source_id, headers=headers, config=config
            )
        except RowValidationError as exc:
            errors.append(RowError(index=index, row=list(cells), error=str(exc)))
            continue
        transactions.append((index, tx))
    return transactions, errors


# camelCase → snake_case keys accepted by ``normalize_payload``
_PAYLOAD_ALIASES: dict[str, str] = {
    "sourceId": "source_id",
    "unitId": "unit_id",
    "categoryId": "category_id",
    "sourceCategory": "source_category",
    "sourceData": "source_data",
}


def normalize_payload(
    payload: Mapping[str, Any], *, config: NormalizerConfig | None = None
) -> NormalizedTransaction:
    """Normalize an already-structured record (API/JSON shape).

    Accepts snake_case or camelCase keys. Dates go through
    :func:`coerce_date` and amounts through :func:`parse_amount`; an incoming
    ``hash`` is discarded and recomputed.
    """

    cfg = config or _DEFAULT_CONFIG
    data: dict[str, Any] = {}
    for key, value in payload.items():
        data[_PAYLOAD_ALIASES.get(key, key)] = value
    data.pop("hash", None)

    if data.get("source_id") is None:
        raise RowValidationError("source_id is required", field="source_id")
    data["date"] = coerce_date(data.get("date"), date_format=cfg.date_format)
    data["amount"] = _amount_or_error(data.get("amount"), cfg, field_name="amount")
    if cfg.reverse_amounts:
        data["amount"] = -data["amount"]
    description = _text(data.get("description"))
    if description is None:
        raise RowValidationError("description is empty", field="description")
    data["description"] = description
    return _build(data)


__all__ = [
    "DEFAULT_TYPE_SIGNS",
    "NormalizerConfig",
    "parse_amount",
    "coerce_date",
    "resolve_amount",
    "is_blank_row",
    "normalize_row",
    "normalize_rows",
    "normalize_payload",
]
