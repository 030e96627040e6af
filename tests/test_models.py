"""Tests for the form schema document model."""

from __future__ import annotations

from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from form_engine.models import (  # noqa: E402
    Condition,
    ConditionGroup,
    ConditionOperator,
    ConditionalRule,
    FieldCategory,
    FieldType,
    FormSchema,
    RuleAction,
    SchemaFormatError,
    Section,
    condition_from_dict,
)
from form_engine.schema_defaults import create_default_field, create_default_schema  # noqa: E402


def test_every_field_type_has_a_category() -> None:
    for member in FieldType:
        assert isinstance(member.category, FieldCategory)


@pytest.mark.parametrize(
    "field_type,expected",
    [
        (FieldType.DIVIDER, False),
        (FieldType.SECTION_HEADER, False),
        (FieldType.HTML_CONTENT, False),
        (FieldType.TEXT, True),
        (FieldType.MATRIX, True),
    ],
)
def test_accepts_input_only_false_for_layout_types(field_type, expected) -> None:
    assert field_type.accepts_input is expected


def test_datetime_type_uses_html_input_name() -> None:
    assert FieldType("datetime-local") is FieldType.DATETIME


def test_condition_from_dict_parses_nested_groups() -> None:
    node = condition_from_dict(
        {
            "all": [
                {"field": "age", "operator": "greater_than", "value": 18},
                {"any": [{"field": "country", "operator": "equals", "value": "NZ"}]},
            ]
        }
    )

    assert isinstance(node, ConditionGroup)
    assert node.mode == "all"
    assert isinstance(node.conditions[0], Condition)
    assert node.conditions[0].operator is ConditionOperator.GREATER_THAN
    assert isinstance(node.conditions[1], ConditionGroup)
    assert node.conditions[1].mode == "any"


def test_conditional_rule_accepts_flat_legacy_shape() -> None:
    rule = ConditionalRule.from_dict({"action": "hide", "field": "smoker", "operator": "equals", "value": "no"})

    assert rule.action is RuleAction.HIDE
    assert rule.when == Condition(field="smoker", operator=ConditionOperator.EQUALS, value="no")


def test_conditional_rule_round_trips_through_dict() -> None:
    rule = ConditionalRule(
        action=RuleAction.REQUIRE,
        when=ConditionGroup(mode="any", conditions=[Condition(field="a", value=1)]),
    )

    assert ConditionalRule.from_dict(rule.to_dict()) == rule


def test_schema_to_dict_and_back_preserves_content() -> None:
    schema = create_default_schema("Intake", created_by="ops@example.com")
    item = create_default_field(FieldType.SELECT)
    item.conditional_logic.append(
        ConditionalRule(action=RuleAction.SHOW, when=Condition(field="age", operator=ConditionOperator.GREATER_THAN, value=65))
    )
    schema.sections.append(Section(id="s1", title="About you", fields=[item]))

    restored = FormSchema.from_dict(schema.to_dict())

    assert restored == schema


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {"title": "No id"},
        {"id": "x", "title": 5},
        {"id": "x", "title": "Bad sections", "created_at": "2024-01-01T00:00:00", "updated_at": "2024-01-01T00:00:00", "sections": {}},
        {"id": "x", "title": "Bad stamp", "created_at": "yesterday", "updated_at": "2024-01-01T00:00:00"},
    ],
)
def test_schema_from_dict_rejects_malformed_payloads(payload) -> None:
    with pytest.raises(SchemaFormatError):
        FormSchema.from_dict(payload)


def test_field_from_dict_rejects_unknown_type() -> None:
    schema = create_default_schema("Broken").to_dict()
    schema["sections"] = [
        {"id": "s1", "title": "One", "fields": [{"id": "f1", "type": "hologram", "label": "?"}]}
    ]

    with pytest.raises(SchemaFormatError):
        FormSchema.from_dict(schema)


def test_find_field_reports_section_and_index() -> None:
    schema = create_default_schema("Lookup")
    first = create_default_field("text")
    second = create_default_field("email")
    schema.sections.append(Section(id="s1", title="One", fields=[first, second]))

    section, index = schema.find_field(second.id)
    assert section.id == "s1"
    assert index == 1
    assert schema.get_field("missing") is None
    assert schema.field_ids() == [first.id, second.id]
