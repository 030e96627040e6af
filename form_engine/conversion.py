"""Convert between stored ``form_data`` documents and editable schemas."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Dict, List, Optional

from form_engine.mappings import map_action, map_field_type, map_logic, map_operator
from form_engine.models import (
    FIELD_WIDTHS,
    Condition,
    ConditionGroup,
    ConditionNode,
    ConditionalRule,
    Field,
    FieldCategory,
    FormSchema,
    FormSettings,
    Option,
    SchemaFormatError,
    Section,
    UsageStats,
    ValidationRule,
    condition_from_dict,
    new_id,
    utc_now,
)
from form_engine.normalizer import DEFAULT_COMPLETION_MESSAGE, NormalizationResult
from form_engine.schema_defaults import DEFAULT_CATEGORY, DEFAULT_SCHEMA_VERSION

logger = logging.getLogger(__name__)

PAGE_TARGET_TYPES = {"page", "section", "step"}


def _ensure_mapping(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _condition_nodes(raw_conditions: Any) -> List[ConditionNode]:
    nodes: List[ConditionNode] = []
    if not isinstance(raw_conditions, list):
        return nodes
    for raw in raw_conditions:
        if not isinstance(raw, Mapping):
            continue
        if "all" in raw or "any" in raw:
            try:
                nodes.append(condition_from_dict(raw))
            except SchemaFormatError:
                logger.debug("Skipping malformed nested condition group %r", raw)
            continue
        operator = map_operator(raw.get("operator"))
        if not raw.get("field") or operator is None:
            logger.debug("Skipping unusable condition %r", raw)
            continue
        nodes.append(Condition(field=str(raw["field"]), operator=operator, value=raw.get("value")))
    return nodes


def _rule_from_conditional(conditional: Mapping) -> Optional[ConditionalRule]:
    nodes = _condition_nodes(conditional.get("conditions"))
    if not nodes:
        return None
    return ConditionalRule(
        action=map_action(conditional.get("action")),
        when=ConditionGroup(mode=map_logic(conditional.get("logic")), conditions=nodes),
    )


def _timestamp(value: Any) -> datetime:
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Ignoring unparseable timestamp %r", value)
    return utc_now()


def _validation_rules(raw: Any) -> List[ValidationRule]:
    rules: List[ValidationRule] = []
    for key, value in _ensure_mapping(raw).items():
        if key == "required":
            continue
        rules.append(ValidationRule(type=str(key), value=None if value is True else value))
    return rules


def _field_from_element(element: Mapping, order: int) -> Field:
    field_type = map_field_type(element.get("type"))
    options = None
    if field_type.category is FieldCategory.CHOICE or element.get("options"):
        options = [
            Option(
                label=str(option.get("label", option.get("value", ""))),
                value=option.get("value"),
                description=str(option.get("description") or ""),
            )
            for option in element.get("options") or []
            if isinstance(option, Mapping) and "value" in option
        ]
    rows = element.get("rows")
    accept = element.get("accept")
    width = element.get("width")
    return Field(
        id=str(element.get("id") or new_id()),
        type=field_type,
        label=str(element.get("label") or ""),
        placeholder=str(element.get("placeholder") or ""),
        required=bool(element.get("required", False)),
        disabled=bool(element.get("disabled", False)),
        readonly=bool(element.get("readonly", False)),
        width=width if width in FIELD_WIDTHS else "full",
        order=order,
        options=options,
        min=_number(element.get("min")),
        max=_number(element.get("max")),
        step=_number(element.get("step")),
        rows=rows if isinstance(rows, int) and not isinstance(rows, bool) else None,
        accept=None if accept is None else str(accept),
        help_text=str(element.get("helpText") or ""),
        default_value=element.get("defaultValue"),
        validation=_validation_rules(element.get("validation")),
        custom_attributes=_ensure_mapping(element.get("customAttributes")),
    )


def schema_from_form_data(form_data: Mapping, *, title: Optional[str] = None) -> FormSchema:
    """Build an editable :class:`FormSchema` from a canonical ``form_data`` document.

    Pages become sections and elements become fields. Conditionals targeting a
    field are attached to that field, conditionals targeting a page to the
    matching section; conditionals pointing at unknown targets are dropped.
    """

    data = _ensure_mapping(form_data)
    flow = _ensure_mapping(data.get("flowConfig"))

    sections: List[Section] = []
    for index, raw_page in enumerate(data.get("pages") or []):
        page = _ensure_mapping(raw_page)
        elements = [item for item in page.get("elements") or [] if isinstance(item, Mapping)]
        estimated = _number(page.get("estimatedTime"))
        sections.append(
            Section(
                id=str(page.get("id") or new_id()),
                title=str(page.get("title") or ""),
                description=str(page.get("description") or ""),
                fields=[_field_from_element(element, order) for order, element in enumerate(elements)],
                order=index,
                collapsible=bool(page.get("collapsible", False)),
                estimated_time=None if estimated is None else int(estimated),
            )
        )

    stored_settings = flow.get("settings")
    if isinstance(stored_settings, Mapping):
        settings = FormSettings.from_dict(stored_settings)
    else:
        settings = FormSettings(multi_step=len(sections) > 1, success_message=DEFAULT_COMPLETION_MESSAGE)
    settings.theme = str(flow.get("theme") or settings.theme)
    settings.success_message = str(flow.get("completionMessage") or settings.success_message)

    tags = flow.get("tags")
    usage = flow.get("usage")
    schema = FormSchema(
        id=str(flow.get("schemaId") or new_id()),
        title=title if title is not None else str(flow.get("title") or ""),
        description=str(flow.get("description") or ""),
        version=str(flow.get("version") or DEFAULT_SCHEMA_VERSION),
        sections=sections,
        settings=settings,
        created_at=_timestamp(flow.get("createdAt")),
        updated_at=_timestamp(flow.get("updatedAt")),
        created_by=str(flow.get("createdBy") or ""),
        tags=[str(tag) for tag in tags] if isinstance(tags, list) else [],
        category=str(flow.get("category") or DEFAULT_CATEGORY),
        is_template=bool(flow.get("isTemplate", False)),
        is_published=bool(flow.get("isPublished", False)),
        usage=UsageStats.from_dict(usage) if isinstance(usage, Mapping) else UsageStats(),
    )

    for raw_conditional in data.get("conditionals") or []:
        conditional = _ensure_mapping(raw_conditional)
        rule = _rule_from_conditional(conditional)
        target = conditional.get("target")
        if rule is None or not target:
            continue
        if str(conditional.get("targetType", "field")).lower() in PAGE_TARGET_TYPES:
            section = schema.find_section(str(target))
            if section is not None:
                section.conditional_logic.append(rule)
                continue
        else:
            item = schema.get_field(str(target))
            if item is not None:
                item.conditional_logic.append(rule)
                continue
        logger.debug("Dropping conditional %r for unknown target %r", conditional.get("id"), target)
    return schema


def schema_from_result(result: NormalizationResult) -> FormSchema:
    """Load a freshly normalised document into an editable schema."""

    schema = schema_from_form_data(result.form_data, title=result.title)
    schema.description = result.description
    if result.service_type and result.service_type not in schema.tags:
        schema.tags.append(result.service_type)
    return schema


def _element_from_field(item: Field) -> Dict[str, Any]:
    element: Dict[str, Any] = {
        "id": item.id,
        "type": item.type.value,
        "label": item.label,
        "required": item.required,
    }
    if item.disabled:
        element["disabled"] = True
    if item.readonly:
        element["readonly"] = True
    if item.width != "full":
        element["width"] = item.width
    if item.placeholder:
        element["placeholder"] = item.placeholder
    if item.help_text:
        element["helpText"] = item.help_text
    if item.options:
        element["options"] = [option.to_dict() for option in item.options]
    for key in ("min", "max", "step", "rows", "accept"):
        value = getattr(item, key)
        if value is not None:
            element[key] = value
    if item.default_value is not None:
        element["defaultValue"] = item.default_value
    if item.validation:
        element["validation"] = {
            rule.type: True if rule.value is None else rule.value for rule in item.validation
        }
    if item.custom_attributes:
        element["customAttributes"] = dict(item.custom_attributes)
    return element


def _conditional_from_rule(rule: ConditionalRule, target: str, target_type: str, number: int) -> Dict[str, Any]:
    when = rule.when
    if isinstance(when, ConditionGroup):
        logic = when.mode
        conditions = [child.to_dict() for child in when.conditions]
    else:
        logic = "all"
        conditions = [when.to_dict()]
    return {
        "id": f"rule_{number}",
        "target": target,
        "targetType": target_type,
        "action": rule.action.value,
        "logic": logic,
        "conditions": conditions,
    }


def schema_to_page_payload(schema: FormSchema) -> Dict[str, Any]:
    """Express ``schema`` as a page-based document accepted by ``normalize``."""

    conditionals: List[Dict[str, Any]] = []
    pages: List[Dict[str, Any]] = []
    for section in schema.sections:
        for rule in section.conditional_logic:
            conditionals.append(_conditional_from_rule(rule, section.id, "page", len(conditionals) + 1))
        for item in section.fields:
            for rule in item.conditional_logic:
                conditionals.append(_conditional_from_rule(rule, item.id, "field", len(conditionals) + 1))
        page: Dict[str, Any] = {
            "id": section.id,
            "title": section.title,
            "description": section.description,
            "elements": [_element_from_field(item) for item in section.fields],
        }
        if section.collapsible:
            page["collapsible"] = True
        if section.estimated_time is not None:
            page["estimatedTime"] = section.estimated_time
        pages.append(page)

    return {
        "title": schema.title,
        "description": schema.description,
        "category": schema.category,
        "flowConfig": {
            "title": schema.title,
            "description": schema.description,
            "version": schema.version,
            "completionMessage": schema.settings.success_message,
            "theme": schema.settings.theme,
            "settings": schema.settings.to_dict(),
            "tags": list(schema.tags),
            "isTemplate": schema.is_template,
            "isPublished": schema.is_published,
            "usage": schema.usage.to_dict(),
            "createdBy": schema.created_by,
            "createdAt": schema.created_at.isoformat(),
            "updatedAt": schema.updated_at.isoformat(),
            "schemaId": schema.id,
        },
        "pages": pages,
        "conditionals": conditionals,
    }
