"""Content hashing for transaction identity.

The fingerprint is the natural key used for duplicate detection. It covers
exactly four fields (source id, date, description, amount rounded to two
decimals) and nothing else, so editing a row's category, notes or tags never
changes its identity.

Changing the canonical string below (delimiter, field order, rounding)
changes the identity of every previously imported row. Bump
``HASH_VERSION`` and plan a re-hash migration if that ever happens.
"""

from __future__ import annotations

import hashlib
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

HASH_VERSION = 1
HASH_LENGTH = 16

_CENTS = Decimal("0.01")

type AmountLike = Decimal | int | float | str


def quantize_amount(amount: AmountLike) -> Decimal:
    """Round ``amount`` to two decimals (half-up) as a ``Decimal``.

    Floats go through ``str()`` first so ``-45.5`` and ``Decimal("-45.50")``
    land on the same value instead of a binary-expansion neighbour.
    """

    if isinstance(amount, bool):
        raise ValueError("amount must be numeric, not bool")
    try:
        d = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {amount!r}") from exc
    if not d.is_finite():
        raise ValueError(f"amount must be finite: {amount!r}")
    try:
        return d.quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        # More digits than the decimal context can hold.
        raise ValueError(f"amount out of range: {amount!r}") from exc


def canonical_identity(source_id: int, date: str, description: str, amount: AmountLike) -> str:
    return f"{source_id}|{date}|{description}|{quantize_amount(amount):.2f}"


def transaction_hash(source_id: int, date: str, description: str, amount: AmountLike) -> str:
    """Return the 16-hex-character SHA-256 fingerprint of a transaction."""

    data = canonical_identity(source_id, date, description, amount)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:HASH_LENGTH]


__all__ = [
    "HASH_VERSION",
    "HASH_LENGTH",
    "AmountLike",
    "quantize_amount",
    "canonical_identity",
    "transaction_hash",
]
