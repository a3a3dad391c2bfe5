from dataclasses import replace

import pytest

from ledger_import.errors import RuleConfigurationError
from ledger_import.models import NormalizedTransaction, RuleSuggestion
from ledger_import.rules import (
    CategoryRule,
    RuleCandidate,
    UnitRule,
    apply_category_rules,
    apply_rules_to_transaction,
    apply_unit_rules,
    matches_pattern,
    validate_pattern,
)
from ledger_import.rules import test_rule as rule_matches


@pytest.mark.parametrize(
    "value, pattern, match_type, expected",
    [
        ("STARBUCKS #123", "starbucks", "contains", True),
        ("STARBUCKS #123", "bucks", "starts_with", False),
        ("STARBUCKS #123", "Starbucks", "starts_with", True),
        ("Netflix", "NETFLIX", "exact", True),
        ("Netflix.com", "netflix", "exact", False),
        ("AMZN Mktp US*2K4", r"amzn\s+mktp", "regex", True),
        ("Payment to AMZN", r"^amzn", "regex", False),
        (None, "x", "contains", False),
    ],
)
def test_matches_pattern(value, pattern, match_type, expected):
    assert matches_pattern(value, pattern, match_type) is expected


def test_invalid_regex_is_rejected_at_construction():
    with pytest.raises(RuleConfigurationError, match="invalid regex"):
        CategoryRule(1, "description", "([unclosed", "regex", category_id=1)
    with pytest.raises(RuleConfigurationError):
        validate_pattern("(", "regex")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"rule_type": "amount"},
        {"match_type": "fuzzy"},
        {"pattern": ""},
        {"priority": -1},
        {"priority": True},
    ],
)
def test_rule_construction_validates_fields(kwargs):
    base = {
        "id": 1,
        "rule_type": "description",
        "pattern": "coffee",
        "match_type": "contains",
        "category_id": 3,
    }
    with pytest.raises(RuleConfigurationError):
        CategoryRule(**{**base, **kwargs})


def test_unit_rules_do_not_accept_category_rule_types():
    with pytest.raises(RuleConfigurationError):
        UnitRule(1, "source_category", "x", "contains", unit_id=1)
    with pytest.raises(RuleConfigurationError):
        CategoryRule(1, "source", "x", "contains", category_id=1)


def test_priority_first_match_wins_and_toggle():
    p1 = CategoryRule(10, "description", "coffee", "contains", category_id=3, priority=1)
    p2 = CategoryRule(5, "description", "shop", "contains", category_id=2, priority=2)
    candidate = RuleCandidate(description="Coffee Shop")

    assert apply_category_rules(candidate, [p2, p1]) == 3

    p1_off = replace(p1, active=False)
    assert apply_category_rules(candidate, [p2, p1_off]) == 2

    p1_on = replace(p1_off, active=True)
    assert apply_category_rules(candidate, [p2, p1_on]) == 3


def test_equal_priority_breaks_ties_by_id():
    later = CategoryRule(7, "description", "coffee", "contains", category_id=2, priority=0)
    earlier = CategoryRule(3, "description", "coffee", "contains", category_id=3, priority=0)
    assert apply_category_rules(RuleCandidate("coffee"), [later, earlier]) == 3


def test_rule_fields_by_rule_type():
    candidate = RuleCandidate(description="Rent", source_category=None, source_id=2)
    by_source = UnitRule(1, "source", "2", "exact", unit_id=2)
    by_category = CategoryRule(1, "source_category", "rent", "contains", category_id=4)
    by_description = CategoryRule(2, "description", "rent", "exact", category_id=4)
    assert apply_unit_rules(candidate, [by_source]) == 2
    assert rule_matches(by_source, candidate)
    # A missing source category reads as "" and matches nothing.
    assert not rule_matches(by_category, candidate)
    assert apply_category_rules(candidate, [by_category, by_description]) == 4


def test_apply_rules_to_transaction_with_model_and_no_match():
    tx = NormalizedTransaction(
        source_id=1,
        date="2024-01-15",
        description="SALARY PAYMENT ACME",
        amount=3000,
        source_category="Payroll",
    )
    unit_rules = [UnitRule(1, "description", "salary", "starts_with", unit_id=1)]
    category_rules = [
        CategoryRule(1, "source_category", "payroll", "exact", category_id=1, priority=5),
        CategoryRule(2, "description", "zzz", "contains", category_id=4, priority=0),
    ]
    assert apply_rules_to_transaction(
        tx, unit_rules=unit_rules, category_rules=category_rules
    ) == RuleSuggestion(unit_id=1, category_id=1)
    assert apply_rules_to_transaction(RuleCandidate("Something else")) == RuleSuggestion(
        None, None
    )


def test_engine_does_not_mutate_rule_lists():
    rules = [
        CategoryRule(2, "description", "a", "contains", category_id=1, priority=9),
        CategoryRule(1, "description", "a", "contains", category_id=2, priority=0),
    ]
    snapshot = list(rules)
    apply_category_rules(RuleCandidate("abc"), rules)
    assert rules == snapshot


def test_test_rule_ignores_active_flag():
    rule = UnitRule(1, "description", "gym", "contains", unit_id=1, active=False)
    assert rule_matches(rule, RuleCandidate("City Gym"))
    assert apply_unit_rules(RuleCandidate("City Gym"), [rule]) is None


def test_source_rule_without_source_reads_empty():
    # A missing source id is "", never a stringified default like "0".
    zero = UnitRule(1, "source", "0", "exact", unit_id=1)
    anything = UnitRule(2, "source", ".*", "regex", unit_id=2)
    candidate = RuleCandidate(description="Cash")
    assert candidate.source_id is None
    assert not rule_matches(zero, candidate)
    assert rule_matches(anything, candidate)
    assert apply_unit_rules(RuleCandidate("Cash", source_id=0), [zero]) == 1


def test_regex_match_requires_compiled_pattern():
    from ledger_import.rules import _match

    with pytest.raises(RuleConfigurationError, match="not compiled"):
        _match("coffee", "coffee", "regex", None)
    assert _match("Coffee", "coff", "starts_with", None)
