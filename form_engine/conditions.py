"""Evaluate field-level conditional rules against a map of answers.

A leaf whose field is missing from ``answers`` always evaluates to ``False``,
whatever the operator. A ``show`` rule that points at an unanswered (or
unknown) field therefore keeps the field hidden, while a ``hide`` rule in the
same situation leaves it visible.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Union

from form_engine.models import (
    Condition,
    ConditionGroup,
    ConditionNode,
    ConditionOperator,
    ConditionalRule,
    Field,
    RuleAction,
    Section,
)

logger = logging.getLogger(__name__)

VISIBILITY_ACTIONS = (RuleAction.SHOW, RuleAction.HIDE)


@dataclass(frozen=True)
class FieldState:
    visible: bool
    required: bool
    disabled: bool


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (Mapping, Sequence, set, frozenset)):
        return len(value) == 0
    return False


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _values_equal(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    actual_number = _as_number(actual)
    expected_number = _as_number(expected)
    if actual_number is None or expected_number is None:
        return False
    return actual_number == expected_number


def _contains(actual: Any, expected: Any) -> bool:
    if actual is None or expected is None:
        return False
    if isinstance(actual, str):
        return str(expected).lower() in actual.lower()
    if isinstance(actual, Mapping):
        return expected in actual
    if isinstance(actual, (Sequence, set, frozenset)):
        return any(_values_equal(item, expected) for item in actual)
    return str(expected).lower() in str(actual).lower()


def evaluate_condition(condition: Condition, answers: Mapping[str, Any]) -> bool:
    """Evaluate a single leaf comparison against ``answers``."""

    if condition.field not in answers:
        return False

    try:
        operator = ConditionOperator(condition.operator)
    except ValueError:
        logger.warning("Unsupported operator: %s", condition.operator)
        return False
    value = answers[condition.field]
    expected = condition.value

    if operator is ConditionOperator.EQUALS:
        return _values_equal(value, expected)
    if operator is ConditionOperator.NOT_EQUALS:
        return not _values_equal(value, expected)
    if operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        left = _as_number(value)
        right = _as_number(expected)
        if left is None or right is None:
            logger.debug(
                "Non-numeric comparison on field %r: %r vs %r", condition.field, value, expected
            )
            return False
        return left > right if operator is ConditionOperator.GREATER_THAN else left < right
    if operator is ConditionOperator.CONTAINS:
        return _contains(value, expected)
    if operator is ConditionOperator.NOT_CONTAINS:
        return not _contains(value, expected)
    if operator is ConditionOperator.IS_EMPTY:
        return _is_empty(value)
    return not _is_empty(value)


def evaluate_rule(node: Optional[ConditionNode], answers: Mapping[str, Any]) -> bool:
    """Evaluate a condition tree, short-circuiting left to right."""

    if node is None:
        return True
    if isinstance(node, ConditionGroup):
        children = (evaluate_rule(child, answers) for child in node.conditions)
        if node.mode == "any":
            return any(children)
        return all(children)
    return evaluate_condition(node, answers)


def _rules(rules: Iterable[ConditionalRule], actions: Iterable[RuleAction]) -> List[ConditionalRule]:
    wanted = tuple(actions)
    return [rule for rule in rules if rule.action in wanted]


def _visible(rules: Iterable[ConditionalRule], answers: Mapping[str, Any]) -> bool:
    visibility = _rules(rules, VISIBILITY_ACTIONS)
    if not visibility:
        return True
    for rule in visibility:
        matched = evaluate_rule(rule.when, answers)
        if rule.action is RuleAction.SHOW and matched:
            return True
        if rule.action is RuleAction.HIDE and not matched:
            return True
    return False


def should_show(field: Field, answers: Mapping[str, Any]) -> bool:
    """Return ``True`` when ``field`` should be displayed for ``answers``."""

    return _visible(field.conditional_logic, answers)


def should_require(field: Field, answers: Mapping[str, Any]) -> bool:
    """Return ``True`` when ``field`` must be answered for ``answers``."""

    if field.required:
        return True
    return any(
        evaluate_rule(rule.when, answers)
        for rule in _rules(field.conditional_logic, (RuleAction.REQUIRE,))
    )


def should_disable(field: Field, answers: Mapping[str, Any]) -> bool:
    """Return ``True`` when ``field`` should be rendered disabled."""

    if field.disabled:
        return True
    return any(
        evaluate_rule(rule.when, answers)
        for rule in _rules(field.conditional_logic, (RuleAction.DISABLE,))
    )


def field_state(field: Field, answers: Mapping[str, Any]) -> FieldState:
    return FieldState(
        visible=should_show(field, answers),
        required=should_require(field, answers),
        disabled=should_disable(field, answers),
    )


def should_show_section(section: Section, answers: Mapping[str, Any]) -> bool:
    return _visible(section.conditional_logic, answers)


def iter_rule_fields(rule: Union[ConditionalRule, ConditionNode, None]) -> List[str]:
    """Return all field ids referenced by ``rule`` in traversal order."""

    if rule is None:
        return []
    if isinstance(rule, ConditionalRule):
        return iter_rule_fields(rule.when)
    if isinstance(rule, ConditionGroup):
        fields: List[str] = []
        for child in rule.conditions:
            fields.extend(iter_rule_fields(child))
        return fields
    return [rule.field]


def rename_rule_field(rule: Union[ConditionalRule, ConditionNode], old_key: str, new_key: str) -> None:
    """Update field references in ``rule`` in place when a field id changes."""

    if isinstance(rule, ConditionalRule):
        rename_rule_field(rule.when, old_key, new_key)
    elif isinstance(rule, ConditionGroup):
        for child in rule.conditions:
            rename_rule_field(child, old_key, new_key)
    elif rule.field == old_key:
        rule.field = new_key
