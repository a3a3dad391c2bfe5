"""Tag helpers: normalization, parsing, and the canonical storage form.

Tags are stored on transactions as a single comma-joined string of
normalized tokens (``"business,travel"``). ``parse_tags`` and
``serialize_tags`` preserve the order the user typed; ``merge_tags`` is a set
union and returns a sorted list.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

_WS_RE = re.compile(r"\s+")

type TagInput = str | Sequence[str] | None


def normalize_tag(tag: str) -> str:
    """Trim, lowercase, and replace whitespace runs with a single hyphen."""

    return _WS_RE.sub("-", tag.strip().lower())


def parse_tags(value: TagInput) -> list[str]:
    """Parse a comma-delimited string or a sequence into unique normalized tags.

    Empty pieces are dropped and the first occurrence of each tag wins, so
    ``"Business, Travel, , business"`` yields ``["business", "travel"]``.
    """

    if not value:
        return []
    parts: Iterable[str]
    if isinstance(value, str):
        parts = value.split(",")
    else:
        # Sequence items may themselves hold commas ("a,b" from a form field)
        parts = (piece for item in value for piece in str(item).split(","))

    seen: set[str] = set()
    result: list[str] = []
    for raw in parts:
        tag = normalize_tag(raw)
        if tag and tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


def serialize_tags(tags: TagInput) -> str:
    return ",".join(parse_tags(tags))


def merge_tags(*inputs: TagInput) -> list[str]:
    """Union any number of tag inputs into a sorted list of unique tags."""

    merged: set[str] = set()
    for item in inputs:
        merged.update(parse_tags(item))
    return sorted(merged)


def suggest_tags(prefix: str, all_tags: Iterable[str], limit: int = 10) -> list[str]:
    """Return known tags whose normalized form starts with the normalized prefix."""

    p = normalize_tag(prefix)
    if not p:
        return []
    known = {normalize_tag(t) for t in all_tags}
    return sorted(t for t in known if t and t.startswith(p))[:limit]


def split_stored_tags(value: str | None) -> list[str]:
    """Split a stored tag column back into a list (no re-normalization)."""

    if not value:
        return []
    return [t.strip() for t in value.split(",") if t.strip()]


__all__ = [
    "TagInput",
    "normalize_tag",
    "parse_tags",
    "serialize_tags",
    "merge_tags",
    "suggest_tags",
    "split_stored_tags",
]
