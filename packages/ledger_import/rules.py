"""Pattern rules that suggest a unit and a category for a transaction.

Rules are plain frozen value objects. The engine never loads them itself:
callers pass an explicit snapshot (typically fetched once per batch from a
:class:`~ledger_import.storage.RuleStore`), which keeps evaluation pure and
makes priority/toggle behavior trivial to test.

Evaluation
----------
Only active rules take part. They are tried in ascending ``(priority, id)``
order and the first rule whose pattern matches wins. ``contains``,
``starts_with`` and ``exact`` compare case-insensitively; ``regex`` patterns
are compiled once with ``re.IGNORECASE`` when the rule is built and matched
with ``search`` semantics.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal, Protocol

from .errors import RuleConfigurationError
from .models import RuleSuggestion

type MatchType = Literal["contains", "starts_with", "exact", "regex"]
type UnitRuleType = Literal["description", "source"]
type CategoryRuleType = Literal["description", "source_category"]

MATCH_TYPES: tuple[str, ...] = ("contains", "starts_with", "exact", "regex")
UNIT_RULE_TYPES: tuple[str, ...] = ("description", "source")
CATEGORY_RULE_TYPES: tuple[str, ...] = ("description", "source_category")


class _Candidate(Protocol):
    @property
    def description(self) -> str: ...

    @property
    def source_category(self) -> str | None: ...

    @property
    def source_id(self) -> int | None: ...


@dataclass(frozen=True, slots=True)
class RuleCandidate:
    """The fields rules look at; a ``NormalizedTransaction`` works just as well."""

    description: str
    source_category: str | None = None
    source_id: int | None = None


def validate_pattern(pattern: str, match_type: str) -> re.Pattern[str] | None:
    """Check ``pattern`` for ``match_type``; return the compiled regex if any.

    Raises
    ------
    RuleConfigurationError
        Unknown match type, empty pattern, or a regex that does not compile.
    """

    if match_type not in MATCH_TYPES:
        raise RuleConfigurationError(
            f"unknown match type {match_type!r}; expected one of {', '.join(MATCH_TYPES)}"
        )
    if not isinstance(pattern, str) or not pattern:
        raise RuleConfigurationError("pattern must be a non-empty string")
    if match_type != "regex":
        return None
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise RuleConfigurationError(f"invalid regex {pattern!r}: {exc}") from exc


def _check_common(rule_type: str, allowed: tuple[str, ...], priority: int) -> None:
    if rule_type not in allowed:
        raise RuleConfigurationError(
            f"unknown rule type {rule_type!r}; expected one of {', '.join(allowed)}"
        )
    if isinstance(priority, bool) or not isinstance(priority, int) or priority < 0:
        raise RuleConfigurationError(f"priority must be a non-negative integer, got {priority!r}")


@dataclass(frozen=True, slots=True)
class UnitRule:
    id: int
    rule_type: UnitRuleType
    pattern: str
    match_type: MatchType
    unit_id: int
    priority: int = 0
    active: bool = True
    _regex: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        _check_common(self.rule_type, UNIT_RULE_TYPES, self.priority)
        object.__setattr__(self, "_regex", validate_pattern(self.pattern, self.match_type))

    @property
    def target(self) -> int:
        return self.unit_id


@dataclass(frozen=True, slots=True)
class CategoryRule:
    id: int
    rule_type: CategoryRuleType
    pattern: str
    match_type: MatchType
    category_id: int
    priority: int = 0
    active: bool = True
    _regex: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        _check_common(self.rule_type, CATEGORY_RULE_TYPES, self.priority)
        object.__setattr__(self, "_regex", validate_pattern(self.pattern, self.match_type))

    @property
    def target(self) -> int:
        return self.category_id


type Rule = UnitRule | CategoryRule


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def matches_pattern(value: str | None, pattern: str, match_type: str) -> bool:
    """Return whether ``value`` matches ``pattern`` under ``match_type``.

    A ``None`` value is treated as the empty string. Invalid patterns raise
    :class:`RuleConfigurationError`.
    """

    compiled = validate_pattern(pattern, match_type)
    return _match(value or "", pattern, match_type, compiled)


def _match(value: str, pattern: str, match_type: str, compiled: re.Pattern[str] | None) -> bool:
    if match_type == "regex":
        if compiled is None:
            raise RuleConfigurationError(f"regex pattern {pattern!r} was not compiled")
        return compiled.search(value) is not None
    v = value.casefold()
    p = pattern.casefold()
    if match_type == "contains":
        return p in v
    if match_type == "starts_with":
        return v.startswith(p)
    return v == p


def _field_value(rule: Rule, candidate: _Candidate) -> str:
    if rule.rule_type == "description":
        return candidate.description or ""
    if rule.rule_type == "source":
        return "" if candidate.source_id is None else str(candidate.source_id)
    return candidate.source_category or ""


def test_rule(rule: Rule, candidate: _Candidate) -> bool:
    """Whether ``rule``'s pattern matches ``candidate``, ignoring ``active``."""

    return _match(_field_value(rule, candidate), rule.pattern, rule.match_type, rule._regex)


# Not a pytest test function.
test_rule.__test__ = False  # type: ignore[attr-defined]


def _ordered(rules: Iterable[Rule]) -> list[Rule]:
    return sorted((r for r in rules if r.active), key=lambda r: (r.priority, r.id))


def first_match(rules: Iterable[Rule], candidate: _Candidate) -> Rule | None:
    for rule in _ordered(rules):
        if test_rule(rule, candidate):
            return rule
    return None


def apply_unit_rules(candidate: _Candidate, rules: Iterable[UnitRule]) -> int | None:
    rule = first_match(rules, candidate)
    return rule.target if rule is not None else None


def apply_category_rules(candidate: _Candidate, rules: Iterable[CategoryRule]) -> int | None:
    rule = first_match(rules, candidate)
    return rule.target if rule is not None else None


def apply_rules_to_transaction(
    candidate: _Candidate,
    *,
    unit_rules: Iterable[UnitRule] = (),
    category_rules: Iterable[CategoryRule] = (),
) -> RuleSuggestion:
    """Suggest a unit and a category for ``candidate`` from rule snapshots."""

    return RuleSuggestion(
        unit_id=apply_unit_rules(candidate, unit_rules),
        category_id=apply_category_rules(candidate, category_rules),
    )


__all__ = [
    "MatchType",
    "MATCH_TYPES",
    "UNIT_RULE_TYPES",
    "CATEGORY_RULE_TYPES",
    "RuleCandidate",
    "UnitRule",
    "CategoryRule",
    "Rule",
    "validate_pattern",
    "matches_pattern",
    "test_rule",
    "first_match",
    "apply_unit_rules",
    "apply_category_rules",
    "apply_rules_to_transaction",
]
