"""
Condition Rule Evaluation

This module evaluates condition rules against the variables collected in a
session. Operators are looked up in a registry mapping each RuleOperator to a
pure comparison function, so each operator can be exercised in isolation.

Semantics:
- String comparisons trim surrounding whitespace and ignore case, except
  ``contains`` / ``not_contains`` which are raw, case-sensitive substring tests.
- ``greater_than`` / ``less_than`` coerce both sides to numbers; anything that
  is not a number becomes NaN and every comparison against NaN is false.
- ``in_list`` / ``not_in_list`` split the rule value on commas.
- An empty rule-set is always true. Multi-output conditions use this to
  declare a default output.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Callable, Mapping, Sequence

from ..models.flow_graph import Rule, RuleSet, RuleOperator, CombineOperator, ConditionOutput
from ..models.variable_store import to_text

logger = logging.getLogger(__name__)

Comparison = Callable[[Optional[str], Any], bool]

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$", re.ASCII)


@dataclass(frozen=True)
class RuleEvaluation:
    """Outcome of one rule, kept for the session trace"""
    field: str
    operator: str
    expected: Any
    actual: Optional[str]
    result: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "operator": self.operator,
            "expected": self.expected,
            "actual": self.actual,
            "result": self.result
        }


def _norm(value: Any) -> str:
    return to_text(value).strip().lower()


def to_number(value: Any) -> float:
    """Coerce to float; non-numeric and empty values become NaN"""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = to_text(value).strip()
    if not _NUMBER_RE.match(text):
        return math.nan
    return float(text)


def _split_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [_norm(item) for item in value]
    return [item.strip().lower() for item in to_text(value).split(",")]


def _is_empty(actual: Optional[str], expected: Any) -> bool:
    return to_text(actual).strip() == ""


def _equals(actual: Optional[str], expected: Any) -> bool:
    return _norm(actual) == _norm(expected)


def _contains(actual: Optional[str], expected: Any) -> bool:
    return to_text(expected) in to_text(actual)


def _starts_with(actual: Optional[str], expected: Any) -> bool:
    return _norm(actual).startswith(_norm(expected))


def _ends_with(actual: Optional[str], expected: Any) -> bool:
    return _norm(actual).endswith(_norm(expected))


def _greater_than(actual: Optional[str], expected: Any) -> bool:
    # NaN on either side compares false
    return to_number(actual) > to_number(expected)


def _less_than(actual: Optional[str], expected: Any) -> bool:
    return to_number(actual) < to_number(expected)


def _in_list(actual: Optional[str], expected: Any) -> bool:
    return _norm(actual) in _split_list(expected)


OPERATOR_REGISTRY: Dict[RuleOperator, Comparison] = {
    RuleOperator.EQUALS: _equals,
    RuleOperator.NOT_EQUALS: lambda actual, expected: not _equals(actual, expected),
    RuleOperator.CONTAINS: _contains,
    RuleOperator.NOT_CONTAINS: lambda actual, expected: not _contains(actual, expected),
    RuleOperator.STARTS_WITH: _starts_with,
    RuleOperator.ENDS_WITH: _ends_with,
    RuleOperator.GREATER_THAN: _greater_than,
    RuleOperator.LESS_THAN: _less_than,
    RuleOperator.IS_EMPTY: _is_empty,
    RuleOperator.IS_NOT_EMPTY: lambda actual, expected: not _is_empty(actual, expected),
    RuleOperator.IN_LIST: _in_list,
    RuleOperator.NOT_IN_LIST: lambda actual, expected: not _in_list(actual, expected),
}


def evaluate_rule(
    rule: Rule,
    store: Mapping[str, str],
    trace: Optional[List[RuleEvaluation]] = None
) -> bool:
    """Evaluate a single rule against the store"""
    comparison = OPERATOR_REGISTRY[rule.operator]
    actual = store.get(rule.field)
    result = bool(comparison(actual, rule.value))

    logger.debug(f"Rule {rule.field} {rule.operator.value} {rule.value!r} on {actual!r} -> {result}")
    if trace is not None:
        trace.append(RuleEvaluation(
            field=rule.field,
            operator=rule.operator.value,
            expected=rule.value,
            actual=actual,
            result=result
        ))
    return result


def evaluate_rule_set(
    rule_set: RuleSet,
    store: Mapping[str, str],
    trace: Optional[List[RuleEvaluation]] = None
) -> bool:
    """
    Combine the rules of a rule-set.

    Every rule is evaluated (so the trace is complete); the outcome matches a
    short-circuit evaluation.
    """
    if rule_set.is_empty:
        return True

    results = [evaluate_rule(rule, store, trace) for rule in rule_set.rules]
    if rule_set.operator == CombineOperator.OR:
        return any(results)
    return all(results)


def evaluate_multi_output(
    outputs: Sequence[ConditionOutput],
    store: Mapping[str, str],
    trace: Optional[List[RuleEvaluation]] = None
) -> Optional[str]:
    """Return the value of the first output whose rule-set holds, or None"""
    for output in matching_outputs(outputs, store, trace):
        return output.value
    return None


def matching_outputs(
    outputs: Sequence[ConditionOutput],
    store: Mapping[str, str],
    trace: Optional[List[RuleEvaluation]] = None
):
    """Lazily yield matching outputs in declaration order"""
    for output in outputs:
        if evaluate_rule_set(output.rule_set, store, trace):
            yield output
