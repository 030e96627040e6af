"""Static schema checks and declared field-level answer validation."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from form_engine.conditions import iter_rule_fields, should_require, should_show, should_show_section
from form_engine.models import Field, FieldCategory, FieldType, FormSchema, ValidationRule

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")
PHONE_STRIP_PATTERN = re.compile(r"[\s\-()]")

DEFAULT_MESSAGES: Dict[str, str] = {
    "required": "This field is required",
    "email": "Please enter a valid email address",
    "phone": "Please enter a valid phone number",
    "min_length": "Text is too short",
    "max_length": "Text is too long",
    "min": "Value is too small",
    "max": "Value is too large",
    "pattern": "Invalid format",
}


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found in a schema or an answer set."""

    location: str
    message: str
    severity: str = "error"
    code: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "location": self.location,
            "message": self.message,
            "severity": self.severity,
            "code": self.code,
        }


def validate_schema(schema: FormSchema) -> List[ValidationIssue]:
    """Run structural checks on ``schema`` without ever raising."""

    issues: List[ValidationIssue] = []

    if not schema.title.strip():
        issues.append(
            ValidationIssue("form-title", "Form title is required", "error", "required")
        )
    if not schema.sections:
        issues.append(
            ValidationIssue(
                "form-sections", "Form must have at least one section", "error", "required"
            )
        )

    seen_ids = set()
    for section in schema.sections:
        if not section.fields:
            issues.append(
                ValidationIssue(
                    section.id,
                    f"Section '{section.title or section.id}' must have at least one field",
                    "warning",
                    "empty_section",
                )
            )
        for item in section.fields:
            if item.id in seen_ids:
                issues.append(
                    ValidationIssue(item.id, f"Duplicate field id detected: {item.id}", "error", "duplicate_id")
                )
            seen_ids.add(item.id)

            if item.options:
                values = [option.value for option in item.options]
                duplicates = sorted({str(value) for value in values if values.count(value) > 1})
                if duplicates:
                    issues.append(
                        ValidationIssue(
                            item.id,
                            f"Field '{item.label or item.id}' repeats option values: {', '.join(duplicates)}",
                            "warning",
                            "duplicate_option",
                        )
                    )

    for section in schema.sections:
        for rule in section.conditional_logic:
            for reference in iter_rule_fields(rule):
                if reference not in seen_ids:
                    issues.append(
                        ValidationIssue(
                            section.id,
                            f"Section '{section.title or section.id}' references unknown field '{reference}'",
                            "warning",
                            "unknown_reference",
                        )
                    )
        for item in section.fields:
            for rule in item.conditional_logic:
                for reference in iter_rule_fields(rule):
                    if reference not in seen_ids:
                        issues.append(
                            ValidationIssue(
                                item.id,
                                f"Field '{item.label or item.id}' references unknown field '{reference}'",
                                "warning",
                                "unknown_reference",
                            )
                        )

    return issues


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _rule_passes(rule: ValidationRule, value: Any) -> bool:
    """Check ``value`` against one declared rule; unknown rule types pass."""

    kind = rule.type
    if kind == "email":
        return bool(EMAIL_PATTERN.match(str(value)))
    if kind == "phone":
        return bool(PHONE_PATTERN.match(PHONE_STRIP_PATTERN.sub("", str(value))))
    if kind in {"min_length", "max_length"}:
        limit = _as_number(rule.value)
        if limit is None:
            return True
        length = len(value) if isinstance(value, (str, Sequence)) else len(str(value))
        return length >= limit if kind == "min_length" else length <= limit
    if kind in {"min", "max"}:
        limit = _as_number(rule.value)
        number = _as_number(value)
        if limit is None:
            return True
        if number is None:
            return False
        return number >= limit if kind == "min" else number <= limit
    if kind == "pattern":
        if not rule.value:
            return True
        try:
            return re.search(str(rule.value), str(value)) is not None
        except re.error:
            return True
    return True


def _implicit_rules(item: Field) -> List[ValidationRule]:
    """Rules implied by the field type and its numeric bounds."""

    rules: List[ValidationRule] = []
    if item.type is FieldType.EMAIL:
        rules.append(ValidationRule(type="email"))
    if item.type.category is FieldCategory.NUMERIC:
        if item.min is not None:
            rules.append(ValidationRule(type="min", value=item.min))
        if item.max is not None:
            rules.append(ValidationRule(type="max", value=item.max))
    return rules


def validate_field_answer(
    item: Field, value: Any, answers: Mapping[str, Any]
) -> List[ValidationIssue]:
    """Validate a single answer; hidden fields are never reported."""

    if not item.type.accepts_input or not should_show(item, answers):
        return []

    issues: List[ValidationIssue] = []
    declared_types = {rule.type for rule in item.validation}
    required = should_require(item, answers) or "required" in declared_types
    if _is_blank(value):
        if required:
            issues.append(ValidationIssue(item.id, DEFAULT_MESSAGES["required"], "error", "required"))
        return issues

    implicit = [rule for rule in _implicit_rules(item) if rule.type not in declared_types]
    for rule in [*implicit, *item.validation]:
        if rule.type == "required":
            continue
        if not _rule_passes(rule, value):
            issues.append(
                ValidationIssue(
                    item.id,
                    rule.message or DEFAULT_MESSAGES.get(rule.type, "Validation failed"),
                    rule.severity,
                    rule.type,
                )
            )
    return issues


def _visible_section_fields(schema: FormSchema, answers: Mapping[str, Any]) -> Iterator[Field]:
    for section in schema.sections:
        if should_show_section(section, answers):
            yield from section.fields


def validate_answers(schema: FormSchema, answers: Mapping[str, Any]) -> List[ValidationIssue]:
    """Validate ``answers`` against the declared constraints of fields in visible sections."""

    issues: List[ValidationIssue] = []
    for item in _visible_section_fields(schema, answers):
        issues.extend(validate_field_answer(item, answers.get(item.id), answers))
    return issues


def completion_percentage(schema: FormSchema, answers: Mapping[str, Any]) -> int:
    """Return the share of visible, answerable fields that hold an answer."""

    total = 0
    filled = 0
    for item in _visible_section_fields(schema, answers):
        if not item.type.accepts_input or not should_show(item, answers):
            continue
        total += 1
        if not _is_blank(answers.get(item.id)):
            filled += 1
    return round(filled * 100 / total) if total else 0
