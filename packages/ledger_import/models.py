"""Data models for the import engine.

``NormalizedTransaction`` is the canonical unit of work handed from the
normalizer to the orchestrator and on to storage. It is a frozen pydantic
model: validation happens once at construction, and ``hash`` is a computed
field derived from the four identity fields, so a caller can never smuggle in
a stale fingerprint.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, computed_field, field_validator

from .fingerprint import quantize_amount, transaction_hash
from .tags import serialize_tags

MAX_DESCRIPTION_LENGTH = 500
# Numeric(18, 2) leaves 16 digits before the decimal point.
AMOUNT_LIMIT = Decimal("1e16")

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class NormalizedTransaction(BaseModel):
    """A validated, canonical transaction ready for dedup and persistence.

    Notes
    -----
    - ``date`` is an ISO ``YYYY-MM-DD`` string; ``date``/``datetime`` inputs
      are converted and any time of day is dropped.
    - ``amount`` is a ``Decimal`` rounded half-up to cents, the precision of
      the ledger column and of the fingerprint, so ``12.345`` is kept as
      ``12.35``. Negative means outflow.
    - ``tags`` is always the canonical comma-joined form (or ``None``).
    - A ``hash`` key in the input is ignored; the property is recomputed.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)

    source_id: int
    unit_id: int | None = None
    date: str
    description: str
    amount: Decimal
    source_category: str | None = None
    category_id: int | None = None
    ignore: bool = False
    notes: str | None = None
    tags: str | None = None
    source_data: dict[str, Any] | None = None

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, v: Any) -> Any:
        if isinstance(v, datetime):
            return v.date().isoformat()
        if isinstance(v, date):
            return v.isoformat()
        return v

    @field_validator("date")
    @classmethod
    def _iso_date(cls, v: str) -> str:
        if not _ISO_DATE_RE.match(v):
            raise ValueError(f"date must be YYYY-MM-DD, got {v!r}")
        date.fromisoformat(v)
        return v

    @field_validator("description")
    @classmethod
    def _description_bounds(cls, v: str) -> str:
        if not v:
            raise ValueError("description must be non-empty")
        if len(v) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(f"description must be at most {MAX_DESCRIPTION_LENGTH} characters")
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def _finite_amount(cls, v: Any) -> Decimal:
        amount = quantize_amount(v)
        if abs(amount) >= AMOUNT_LIMIT:
            raise ValueError(f"amount must be below {AMOUNT_LIMIT:,.0f} in magnitude")
        return amount

    @field_validator("source_category", "notes", mode="after")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        return v or None

    @field_validator("tags", mode="before")
    @classmethod
    def _canonical_tags(cls, v: Any) -> str | None:
        if v is None:
            return None
        return serialize_tags(v) or None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def hash(self) -> str:
        return transaction_hash(self.source_id, self.date, self.description, self.amount)


class RuleSuggestion(NamedTuple):
    """Targets suggested by the rule engine; ``None`` means "no suggestion"."""

    unit_id: int | None
    category_id: int | None


@dataclass(frozen=True, slots=True)
class RowError:
    """A failed row: its 0-based position in the batch, the row, and the cause."""

    index: int
    row: Any
    error: str


type ImportStatus = Literal["success", "partial", "failed"]


@dataclass(slots=True)
class ImportOutcome:
    """Per-batch counters plus the ordered list of failed rows.

    Duplicates are counted in ``skipped`` and are not failures.
    """

    imported: int = 0
    skipped: int = 0
    errors: list[RowError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.imported + self.skipped + len(self.errors)

    @property
    def status(self) -> ImportStatus:
        if not self.errors:
            return "success"
        if self.imported or self.skipped:
            return "partial"
        return "failed"

    def record_error(self, index: int, row: Any, error: str) -> None:
        self.errors.append(RowError(index=index, row=row, error=error))

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "total": self.total,
            "status": self.status,
            "errors": [{"index": e.index, "error": e.error} for e in self.errors],
        }


__all__ = [
    "MAX_DESCRIPTION_LENGTH",
    "AMOUNT_LIMIT",
    "NormalizedTransaction",
    "RuleSuggestion",
    "RowError",
    "ImportStatus",
    "ImportOutcome",
]
