"""
Tests for Condition Rule Evaluation
===================================
Covers every operator in the registry, rule-set combination and
first-match selection for multi-output conditions.
"""

import math

import pytest

from cvflow.core.condition_evaluator import (
    OPERATOR_REGISTRY,
    evaluate_rule,
    evaluate_rule_set,
    evaluate_multi_output,
    matching_outputs,
    to_number
)
from cvflow.models.flow_graph import Rule, RuleSet, RuleOperator, ConditionOutput
from cvflow.models.variable_store import VariableStore


@pytest.mark.parametrize("operator,actual,expected,result", [
    ("equals", " Yes ", "yes", True),
    ("equals", "no", "yes", False),
    ("not_equals", "no", "yes", True),
    ("not_equals", "YES", "yes", False),
    ("contains", "Python, Go", "Go", True),
    ("contains", "Python, Go", "go", False),
    ("not_contains", "Python", "Rust", True),
    ("not_contains", "Python", "Py", False),
    ("starts_with", "  Senior Engineer", "senior", True),
    ("starts_with", "Engineer", "senior", False),
    ("ends_with", "Lead Developer ", "DEVELOPER", True),
    ("ends_with", "Developer lead", "developer", False),
    ("greater_than", "25", "18", True),
    ("greater_than", "10", "18", False),
    ("greater_than", "eighteen", "18", False),
    ("greater_than", "1e3", "999", True),
    ("greater_than", "٢٥", "18", False),
    ("less_than", "3.5", "4", True),
    ("less_than", "abc", "4", False),
    ("is_empty", "   ", None, True),
    ("is_empty", "x", None, False),
    ("is_not_empty", "x", None, True),
    ("is_not_empty", "", None, False),
    ("in_list", " Gold ", "gold, silver", True),
    ("in_list", "bronze", "gold,silver", False),
    ("not_in_list", "bronze", "gold, silver", True),
    ("not_in_list", "SILVER", "gold, silver", False),
])
def test_operator(operator, actual, expected, result):
    """Each operator compares the stored text against the rule value"""
    rule = Rule(field="v", operator=operator, value=expected)
    assert evaluate_rule(rule, {"v": actual}) is result


def test_every_operator_is_registered():
    assert set(OPERATOR_REGISTRY) == set(RuleOperator)


def test_missing_variable_is_empty():
    assert evaluate_rule(Rule(field="absent", operator="is_empty"), {}) is True
    assert evaluate_rule(Rule(field="absent", operator="equals", value=""), {}) is True
    assert evaluate_rule(Rule(field="absent", operator="greater_than", value="0"), {}) is False
    assert evaluate_rule(Rule(field="absent", operator="less_than", value="0"), {}) is False


def test_numeric_rule_values():
    """Rule operands may arrive as JSON numbers or lists"""
    assert evaluate_rule(Rule(field="spend", operator="greater_than", value=1000), {"spend": "1500"})
    assert evaluate_rule(Rule(field="tier", operator="in_list", value=["Gold", "Silver"]), {"tier": "silver"})


def test_to_number():
    assert to_number("42") == 42.0
    assert to_number(" -3.5 ") == -3.5
    assert to_number(7) == 7.0
    assert math.isnan(to_number(""))
    assert math.isnan(to_number("12abc"))
    assert math.isnan(to_number(None))
    assert math.isnan(to_number("٢٥"))


def test_non_string_values_in_plain_mapping():
    """Callers may pass any mapping, not only a VariableStore"""
    store = {"n": 0, "flag": False}
    assert evaluate_rule(Rule(field="n", operator="is_empty"), store) is False
    assert evaluate_rule(Rule(field="n", operator="is_not_empty"), store) is True
    assert evaluate_rule(Rule(field="flag", operator="equals", value="false"), store) is True


@pytest.mark.parametrize("store", [{}, {"age": "5"}, {"name": "x", "age": "99"}])
def test_empty_rule_set_is_true(store):
    assert evaluate_rule_set(RuleSet(), store) is True
    assert evaluate_rule_set(RuleSet(operator="or"), store) is True


def test_and_or_combination():
    yes = Rule(field="a", operator="equals", value="1")
    no = Rule(field="a", operator="equals", value="2")
    store = {"a": "1"}

    assert evaluate_rule_set(RuleSet(operator="and", rules=[yes, yes]), store) is True
    assert evaluate_rule_set(RuleSet(operator="and", rules=[yes, no]), store) is False
    assert evaluate_rule_set(RuleSet(operator="or", rules=[no, yes]), store) is True
    assert evaluate_rule_set(RuleSet(operator="or", rules=[no, no]), store) is False


def test_rule_set_records_every_evaluation():
    trace = []
    rule_set = RuleSet(operator="or", rules=[
        Rule(field="a", operator="equals", value="1"),
        Rule(field="b", operator="is_empty")
    ])
    assert evaluate_rule_set(rule_set, {"a": "1"}, trace) is True
    assert [entry.field for entry in trace] == ["a", "b"]
    assert trace[0].to_dict()["operator"] == "equals"


def test_evaluation_reads_variable_store():
    store = VariableStore({"age": 25})
    assert evaluate_rule(Rule(field="age", operator="greater_than", value="18"), store)


def _tier_outputs():
    return [
        ConditionOutput(value="gold", rules=[Rule(field="spend", operator="greater_than", value=1000)]),
        ConditionOutput(value="silver", rules=[Rule(field="spend", operator="greater_than", value=100)]),
        ConditionOutput(value="bronze", rules=[])
    ]


@pytest.mark.parametrize("spend,tier", [("5000", "gold"), ("500", "silver"), ("50", "bronze"), ("n/a", "bronze")])
def test_multi_output_first_match(spend, tier):
    assert evaluate_multi_output(_tier_outputs(), {"spend": spend}) == tier


def test_multi_output_without_default_can_miss():
    outputs = _tier_outputs()[:2]
    assert evaluate_multi_output(outputs, {"spend": "5"}) is None


def test_earlier_output_wins_when_several_match():
    outputs = [
        ConditionOutput(value="first", rules=[Rule(field="x", operator="is_not_empty")]),
        ConditionOutput(value="second", rules=[])
    ]
    assert evaluate_multi_output(outputs, {"x": "set"}) == "first"
    assert evaluate_multi_output(outputs, {}) == "second"


def test_matching_outputs_is_lazy():
    trace = []
    generator = matching_outputs(_tier_outputs(), {"spend": "5000"}, trace)
    assert next(generator).value == "gold"
    assert len(trace) == 1
