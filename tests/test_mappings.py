"""Tests for the normalisation lookup tables."""

from __future__ import annotations

from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from form_engine.mappings import (  # noqa: E402
    map_action,
    map_field_type,
    map_logic,
    map_operator,
    map_service_type,
    map_validation_rules,
)
from form_engine.models import ConditionOperator, FieldType, RuleAction  # noqa: E402


@pytest.mark.parametrize(
    "source,expected",
    [
        ("input", FieldType.TEXT),
        ("textbox", FieldType.TEXT),
        ("String", FieldType.TEXT),
        ("dropdown", FieldType.SELECT),
        ("phone", FieldType.TEL),
        ("telephone", FieldType.TEL),
        ("radiobutton", FieldType.RADIO),
        ("checkboxes", FieldType.CHECKBOX),
        ("datetime", FieldType.DATETIME),
        ("email", FieldType.EMAIL),
        ("section-header", FieldType.SECTION_HEADER),
        ("file upload", FieldType.FILE),
        ("quantum-entangler", FieldType.TEXT),
        (None, FieldType.TEXT),
    ],
)
def test_map_field_type(source, expected) -> None:
    assert map_field_type(source) is expected


def test_validation_aliases_are_renamed_and_others_pass_through() -> None:
    rules = map_validation_rules({"minLength": 2, "minimum": 1, "regex": "^a", "max_length": 9, "custom": True})

    assert rules == {"min_length": 2, "min": 1, "pattern": "^a", "max_length": 9, "custom": True}


def test_validation_rules_accept_list_form() -> None:
    rules = map_validation_rules([{"type": "maxLength", "value": 10}, {"type": "email"}, {"value": 3}, "junk"])

    assert rules == {"max_length": 10, "email": True}


def test_validation_rules_ignore_other_shapes() -> None:
    assert map_validation_rules("required") == {}
    assert map_validation_rules(None) == {}


@pytest.mark.parametrize(
    "source,expected",
    [
        ("==", ConditionOperator.EQUALS),
        ("eq", ConditionOperator.EQUALS),
        (None, ConditionOperator.EQUALS),
        (">", ConditionOperator.GREATER_THAN),
        ("gt", ConditionOperator.GREATER_THAN),
        ("greaterThan", ConditionOperator.GREATER_THAN),
        ("lt", ConditionOperator.LESS_THAN),
        ("empty", ConditionOperator.IS_EMPTY),
        ("isNotEmpty", ConditionOperator.IS_NOT_EMPTY),
        ("not_contains", ConditionOperator.NOT_CONTAINS),
        ("resembles", None),
    ],
)
def test_map_operator(source, expected) -> None:
    assert map_operator(source) is expected


def test_map_action_and_logic_defaults() -> None:
    assert map_action("hide") is RuleAction.HIDE
    assert map_action("required") is RuleAction.REQUIRE
    assert map_action(None) is RuleAction.SHOW
    assert map_action("explode") is RuleAction.SHOW
    assert map_logic("OR") == "any"
    assert map_logic("and") == "all"
    assert map_logic(None) == "all"


@pytest.mark.parametrize(
    "category,expected",
    [
        ("consultation", "paid"),
        ("intake", "free"),
        ("Assessment", "free"),
        ("free", "free"),
        ("paid", "paid"),
        ("newsletter", None),
        (None, None),
    ],
)
def test_map_service_type(category, expected) -> None:
    assert map_service_type(category) == expected
