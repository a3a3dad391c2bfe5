"""Column roles, the role↔column mapping, and header auto-detection.

A spreadsheet export is interpreted through a :class:`ColumnMapping` that
assigns semantic roles (``date``, ``description``, ``amount``...) to column
indices. The mapping is a small bidirectional map: a column holds at most one
role and a role points at most at one column. :meth:`ColumnMapping.reassign`
keeps both directions consistent in one step, which is what an interactive
"map columns" screen needs when a user moves a role from one column to
another.

Detection priority comes from the order of :data:`HEADER_SYNONYMS`, never from
the physical order of columns in the file. With headers
``Date, Description, Amount, Type, Category`` the ``source_category`` role
lands on ``Category`` because ``"category"`` is listed before ``"type"``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any, Literal

type Role = Literal[
    "date",
    "description",
    "amount",
    "source_category",
    "debit",
    "credit",
    "transaction_type",
    "notes",
    "tags",
]

ROLES: tuple[str, ...] = (
    "date",
    "description",
    "amount",
    "source_category",
    "debit",
    "credit",
    "transaction_type",
    "notes",
    "tags",
)

# Role → accepted header names, both in priority order. Headers are compared
# after trimming and case-folding; matching is exact (no substring search).
HEADER_SYNONYMS: dict[str, tuple[str, ...]] = {
    "date": (
        "date",
        "transaction date",
        "posted date",
        "effective date",
        "trans date",
        "time",
        "timestamp",
        "date posted",
        "settlement date",
        "booking date",
    ),
    "description": (
        "description",
        "desc",
        "merchant",
        "payee",
        "transaction description",
        "details",
        "memo",
        "reference",
        "vendor",
        "transaction details",
    ),
    "amount": (
        "amount",
        "debit",
        "credit",
        "transaction amount",
        "net amount",
        "total",
        "sum",
        "value",
        "charge",
        "payment",
        "amount (usd)",
    ),
    "source_category": (
        "category",
        "type",
        "classification",
        "class",
        "merchant category",
        "transaction type",
        "trans type",
        "category code",
        "mcc",
    ),
    "notes": ("notes", "note", "memo", "comment", "comments"),
    "tags": ("tags", "labels"),
}

_DEBIT_HEADERS: frozenset[str] = frozenset({"debit", "debit amount", "withdrawal", "withdrawals"})
_CREDIT_HEADERS: frozenset[str] = frozenset({"credit", "credit amount", "deposit", "deposits"})
_TYPE_LABELS: frozenset[str] = frozenset({"credit", "debit"})


def _check_role(role: str) -> str:
    if role not in ROLES:
        raise ValueError(f"unknown column role: {role!r}. Allowed: {', '.join(ROLES)}")
    return role


def _check_column(column: int) -> int:
    if isinstance(column, bool) or not isinstance(column, int) or column < 0:
        raise ValueError(f"column index must be a non-negative integer, got {column!r}")
    return column


class ColumnMapping:
    """Bidirectional role ↔ column-index assignment for one import batch."""

    __slots__ = ("_by_role", "_by_column")

    def __init__(self) -> None:
        self._by_role: dict[str, int] = {}
        self._by_column: dict[int, str] = {}

    # ---- construction --------------------------------------------------------

    @classmethod
    def from_dict(cls, assignments: Mapping[str, Any]) -> ColumnMapping:
        """Build a mapping from ``{role: index}``.

        Indices may be ints, numeric strings, or ``None``/``""``/``-1`` for
        "unmapped" (the shapes UI layers tend to send). Assigning one column to
        two roles is rejected rather than silently resolved.
        """

        mapping = cls()
        for role, raw in assignments.items():
            _check_role(role)
            column = _coerce_index(raw)
            if column is None:
                continue
            holder = mapping.role_for(column)
            if holder is not None:
                raise ValueError(
                    f"column {column} assigned to both {holder!r} and {role!r}"
                )
            mapping.reassign(column, role)
        return mapping

    def copy(self) -> ColumnMapping:
        clone = ColumnMapping()
        clone._by_role = dict(self._by_role)
        clone._by_column = dict(self._by_column)
        return clone

    # ---- queries -------------------------------------------------------------

    def get(self, role: str) -> int | None:
        return self._by_role.get(_check_role(role))

    def role_for(self, column: int) -> str | None:
        return self._by_column.get(column)

    def is_mapped(self, role: str) -> bool:
        return _check_role(role) in self._by_role

    def missing_required(self) -> list[str]:
        """Return required roles that are unmapped, in role order.

        ``date`` and ``description`` are always required. An amount can come
        from a single ``amount`` column or from a ``debit``/``credit`` pair.
        """

        missing = [r for r in ("date", "description") if r not in self._by_role]
        has_amount = "amount" in self._by_role or (
            "debit" in self._by_role or "credit" in self._by_role
        )
        if not has_amount:
            missing.append("amount")
        if "transaction_type" in self._by_role and "amount" not in self._by_role:
            missing.append("amount")
        return list(dict.fromkeys(missing))

    def as_dict(self) -> dict[str, int | None]:
        return {role: self._by_role.get(role) for role in ROLES}

    def items(self) -> Iterator[tuple[str, int]]:
        for role in ROLES:
            if role in self._by_role:
                yield role, self._by_role[role]

    # ---- mutation ------------------------------------------------------------

    def reassign(self, column: int, role: str | None) -> None:
        """Point ``role`` at ``column``, keeping both directions consistent.

        Clears whatever role ``column`` held before and detaches ``role`` from
        any other column, then links the pair. ``role=None`` just unmaps the
        column.
        """

        _check_column(column)
        previous_role = self._by_column.pop(column, None)
        if previous_role is not None:
            del self._by_role[previous_role]
        if role is None:
            return
        _check_role(role)
        previous_column = self._by_role.pop(role, None)
        if previous_column is not None:
            del self._by_column[previous_column]
        self._by_role[role] = column
        self._by_column[column] = role

    def unassign(self, role: str) -> None:
        column = self._by_role.pop(_check_role(role), None)
        if column is not None:
            del self._by_column[column]

    # ---- dunder --------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ColumnMapping):
            return NotImplemented
        return self._by_role == other._by_role

    def __repr__(self) -> str:
        inner = ", ".join(f"{r}={c}" for r, c in self.items())
        return f"ColumnMapping({inner})"


def _coerce_index(raw: Any) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError(f"invalid column index: {raw!r}")
    if isinstance(raw, int):
        return None if raw < 0 else raw
    s = str(raw).strip()
    if not s:
        return None
    try:
        value = int(s)
    except ValueError as exc:
        raise ValueError(f"invalid column index: {raw!r}") from exc
    return None if value < 0 else value


def _fold(header: Any) -> str:
    return str(header if header is not None else "").strip().casefold()


def detect_columns(headers: Sequence[str]) -> ColumnMapping:
    """Infer a :class:`ColumnMapping` from a header row.

    For each role (in table order) and each of its synonyms (in table order),
    the first header equal to the synonym wins and the role is frozen. A
    column already claimed by an earlier role is not handed to a later one.
    When the amount would come from a bare ``Debit`` or ``Credit`` column and
    the file carries both, the pair is mapped to ``debit``/``credit`` instead.
    Unmatched roles stay unmapped for the caller to fill in.
    """

    folded = [_fold(h) for h in headers]
    mapping = ColumnMapping()
    for role, synonyms in HEADER_SYNONYMS.items():
        for synonym in synonyms:
            column = next(
                (
                    i
                    for i, h in enumerate(folded)
                    if h == synonym and mapping.role_for(i) is None
                ),
                None,
            )
            if column is not None:
                mapping.reassign(column, role)
                break

    _split_debit_credit(mapping, folded)
    return mapping


def detect_debit_credit_columns(headers: Sequence[str]) -> tuple[int, int] | None:
    """Return ``(debit_index, credit_index)`` for split-amount exports, else ``None``."""

    folded = [_fold(h) for h in headers]
    debit_col = next((i for i, h in enumerate(folded) if h in _DEBIT_HEADERS), None)
    credit_col = next((i for i, h in enumerate(folded) if h in _CREDIT_HEADERS), None)
    if debit_col is None or credit_col is None:
        return None
    return debit_col, credit_col


def _split_debit_credit(mapping: ColumnMapping, folded: Sequence[str]) -> None:
    amount_col = mapping.get("amount")
    if amount_col is not None and folded[amount_col] not in (_DEBIT_HEADERS | _CREDIT_HEADERS):
        return
    # Columns claimed by other roles are blanked out before the pair search.
    free = [
        h if i == amount_col or mapping.role_for(i) is None else ""
        for i, h in enumerate(folded)
    ]
    pair = detect_debit_credit_columns(free)
    if pair is None:
        return
    debit_col, credit_col = pair
    mapping.unassign("amount")
    mapping.reassign(debit_col, "debit")
    mapping.reassign(credit_col, "credit")


def detect_transaction_type_column(
    headers: Sequence[str], sample_rows: Iterable[Sequence[Any]]
) -> int | None:
    """Return the first column whose sample values are only ``Credit``/``Debit``.

    Empty cells are ignored; a column with no non-empty samples never
    qualifies. Callers typically promote the result with
    ``mapping.reassign(index, "transaction_type")``, which also detaches the
    column from ``source_category`` if auto-detection had put it there.
    """

    rows = [list(r) for r in sample_rows]
    for index in range(len(headers)):
        values = {
            _fold(r[index]) for r in rows if index < len(r) and _fold(r[index])
        }
        if values and values <= _TYPE_LABELS:
            return index
    return None


__all__ = [
    "Role",
    "ROLES",
    "HEADER_SYNONYMS",
    "ColumnMapping",
    "detect_columns",
    "detect_debit_credit_columns",
    "detect_transaction_type_column",
]
