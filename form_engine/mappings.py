"""Lookup tables used when normalising externally authored form JSON."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterable, Optional

from form_engine.models import ConditionOperator, FieldType, RuleAction

logger = logging.getLogger(__name__)

FIELD_TYPE_ALIASES: Dict[str, FieldType] = {
    "input": FieldType.TEXT,
    "textbox": FieldType.TEXT,
    "textfield": FieldType.TEXT,
    "string": FieldType.TEXT,
    "short_text": FieldType.TEXT,
    "shorttext": FieldType.TEXT,
    "name": FieldType.TEXT,
    "long_text": FieldType.TEXTAREA,
    "longtext": FieldType.TEXTAREA,
    "paragraph": FieldType.TEXTAREA,
    "multiline": FieldType.TEXTAREA,
    "comment": FieldType.TEXTAREA,
    "mail": FieldType.EMAIL,
    "e-mail": FieldType.EMAIL,
    "phone": FieldType.TEL,
    "telephone": FieldType.TEL,
    "phone_number": FieldType.TEL,
    "mobile": FieldType.TEL,
    "integer": FieldType.NUMBER,
    "int": FieldType.NUMBER,
    "float": FieldType.NUMBER,
    "decimal": FieldType.NUMBER,
    "numeric": FieldType.NUMBER,
    "weight": FieldType.NUMBER,
    "height": FieldType.NUMBER,
    "website": FieldType.URL,
    "link": FieldType.URL,
    "datetime": FieldType.DATETIME,
    "date-time": FieldType.DATETIME,
    "date_time": FieldType.DATETIME,
    "timestamp": FieldType.DATETIME,
    "dropdown": FieldType.SELECT,
    "select_one": FieldType.SELECT,
    "single_select": FieldType.SELECT,
    "choice": FieldType.SELECT,
    "multi_select": FieldType.MULTISELECT,
    "multi-select": FieldType.MULTISELECT,
    "select_multiple": FieldType.MULTISELECT,
    "tags": FieldType.MULTISELECT,
    "radiobutton": FieldType.RADIO,
    "radiobuttons": FieldType.RADIO,
    "radio_button": FieldType.RADIO,
    "radiogroup": FieldType.RADIO,
    "yesno": FieldType.RADIO,
    "yes_no": FieldType.RADIO,
    "boolean": FieldType.CHECKBOX,
    "bool": FieldType.CHECKBOX,
    "checkboxes": FieldType.CHECKBOX,
    "checkbox_group": FieldType.CHECKBOX,
    "upload": FieldType.FILE,
    "file_upload": FieldType.FILE,
    "fileupload": FieldType.FILE,
    "image": FieldType.FILE,
    "photo": FieldType.FILE,
    "progress-photo": FieldType.FILE,
    "lab-upload": FieldType.FILE,
    "slider": FieldType.RANGE,
    "scale": FieldType.RANGE,
    "stars": FieldType.RATING,
    "progress-rating": FieldType.RATING,
    "heading": FieldType.SECTION_HEADER,
    "header": FieldType.SECTION_HEADER,
    "title": FieldType.SECTION_HEADER,
    "separator": FieldType.DIVIDER,
    "hr": FieldType.DIVIDER,
    "html": FieldType.HTML_CONTENT,
    "content": FieldType.HTML_CONTENT,
    "statement": FieldType.HTML_CONTENT,
    "markdown": FieldType.HTML_CONTENT,
    "grid": FieldType.MATRIX,
    "table": FieldType.MATRIX,
}

VALIDATION_ALIASES: Dict[str, str] = {
    "minLength": "min_length",
    "minlength": "min_length",
    "min_len": "min_length",
    "maxLength": "max_length",
    "maxlength": "max_length",
    "max_len": "max_length",
    "minimum": "min",
    "minValue": "min",
    "min_value": "min",
    "maximum": "max",
    "maxValue": "max",
    "max_value": "max",
    "regex": "pattern",
    "regexp": "pattern",
    "isRequired": "required",
    "is_required": "required",
}

OPERATOR_ALIASES: Dict[str, ConditionOperator] = {
    "==": ConditionOperator.EQUALS,
    "=": ConditionOperator.EQUALS,
    "eq": ConditionOperator.EQUALS,
    "is": ConditionOperator.EQUALS,
    "equal": ConditionOperator.EQUALS,
    "!=": ConditionOperator.NOT_EQUALS,
    "<>": ConditionOperator.NOT_EQUALS,
    "ne": ConditionOperator.NOT_EQUALS,
    "neq": ConditionOperator.NOT_EQUALS,
    "is_not": ConditionOperator.NOT_EQUALS,
    "notequals": ConditionOperator.NOT_EQUALS,
    ">": ConditionOperator.GREATER_THAN,
    "gt": ConditionOperator.GREATER_THAN,
    "greaterthan": ConditionOperator.GREATER_THAN,
    "<": ConditionOperator.LESS_THAN,
    "lt": ConditionOperator.LESS_THAN,
    "lessthan": ConditionOperator.LESS_THAN,
    "includes": ConditionOperator.CONTAINS,
    "has": ConditionOperator.CONTAINS,
    "not_includes": ConditionOperator.NOT_CONTAINS,
    "excludes": ConditionOperator.NOT_CONTAINS,
    "empty": ConditionOperator.IS_EMPTY,
    "isempty": ConditionOperator.IS_EMPTY,
    "not_empty": ConditionOperator.IS_NOT_EMPTY,
    "notempty": ConditionOperator.IS_NOT_EMPTY,
    "isnotempty": ConditionOperator.IS_NOT_EMPTY,
    "exists": ConditionOperator.IS_NOT_EMPTY,
}

ACTION_ALIASES: Dict[str, RuleAction] = {
    "visible": RuleAction.SHOW,
    "display": RuleAction.SHOW,
    "showif": RuleAction.SHOW,
    "hidden": RuleAction.HIDE,
    "hideif": RuleAction.HIDE,
    "required": RuleAction.REQUIRE,
    "disabled": RuleAction.DISABLE,
}

LOGIC_ALIASES: Dict[str, str] = {
    "all": "all",
    "and": "all",
    "every": "all",
    "any": "any",
    "or": "any",
    "some": "any",
}

SERVICE_TYPES: Dict[str, str] = {
    "consultation": "paid",
    "intake": "free",
    "assessment": "free",
    "free": "free",
    "paid": "paid",
}


def _key(value: Any) -> str:
    return str(value).strip().lower() if value is not None else ""


def map_field_type(source_type: Any) -> FieldType:
    """Translate a loosely named source type; unknown types fall back to text."""

    key = _key(source_type)
    try:
        return FieldType(key)
    except ValueError:
        pass
    mapped = FIELD_TYPE_ALIASES.get(key) or FIELD_TYPE_ALIASES.get(key.replace(" ", "_"))
    if mapped is None:
        logger.debug("Unknown field type %r mapped to text", source_type)
        return FieldType.TEXT
    return mapped


def map_validation_key(key: str) -> str:
    """Return the canonical validation key; canonical and unknown keys pass through."""

    return VALIDATION_ALIASES.get(key, key)


def map_validation_rules(rules: Any) -> Dict[str, Any]:
    """Normalise a validation mapping or ``[{type, value}]`` list into a dict."""

    normalised: Dict[str, Any] = {}
    if isinstance(rules, Mapping):
        items: Iterable = rules.items()
    elif isinstance(rules, list):
        pairs = []
        for entry in rules:
            if isinstance(entry, Mapping) and entry.get("type"):
                pairs.append((str(entry["type"]), entry.get("value", True)))
        items = pairs
    else:
        return normalised
    for key, value in items:
        normalised[map_validation_key(str(key))] = value
    return normalised


def map_operator(source_operator: Any) -> Optional[ConditionOperator]:
    key = _key(source_operator) or "equals"
    try:
        return ConditionOperator(key)
    except ValueError:
        pass
    return OPERATOR_ALIASES.get(key) or OPERATOR_ALIASES.get(key.replace("_", "").replace(" ", ""))


def map_action(source_action: Any) -> RuleAction:
    key = _key(source_action) or "show"
    try:
        return RuleAction(key)
    except ValueError:
        return ACTION_ALIASES.get(key.replace("_", ""), RuleAction.SHOW)


def map_logic(source_logic: Any) -> str:
    return LOGIC_ALIASES.get(_key(source_logic), "all")


def map_service_type(category: Any) -> Optional[str]:
    """Classify a source category as ``free``/``paid``; unknown gives ``None``."""

    return SERVICE_TYPES.get(_key(category))
