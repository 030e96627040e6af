"""Detect the shape of externally authored form JSON and normalise it.

Each supported shape is a :class:`FormatHandler` pairing a ``matches``
predicate with a ``transform`` function. ``normalize`` walks
``FORMAT_HANDLERS`` in priority order and uses the first handler that claims
the payload, so a new external format only needs a new handler appended to
the tuple.

Every handler produces the same canonical ``form_data`` document::

    {
        "flowConfig": {...},
        "pages": [{"id", "title", "description", "elements": [...]}],
        "conditionals": [{"id", "target", "targetType", "action", "logic", "conditions"}],
        "completionActions": [{"type", "order", "config", "stepId"}],
        "validation": {"requiredFields": [...], "validateOnSubmit": bool},
    }

Normalising the ``form_data`` of a result a second time yields the same
document, because canonical output is itself valid page-based input.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from form_engine.mappings import (
    map_action,
    map_field_type,
    map_logic,
    map_operator,
    map_service_type,
    map_validation_rules,
)
from form_engine.models import utc_now
from form_engine.schema_defaults import DEFAULT_SCHEMA_VERSION
from form_engine.slugs import unique_slug

logger = logging.getLogger(__name__)

DEFAULT_COMPLETION_MESSAGE = "Thank you for completing this form!"
DEFAULT_ESTIMATED_TIME = 5
DEFAULT_THEME = "default"

GROUP_TYPES = {"group", "composite", "fieldset"}
SIMPLE_OBJECT_RESERVED_KEYS = {
    "title",
    "name",
    "description",
    "category",
    "categoryId",
    "category_id",
    "isActive",
    "is_active",
    "flowConfig",
    "validation",
    "version",
    "theme",
}

# Optional element attributes copied through when present, keyed by output name.
ELEMENT_ATTRIBUTE_SOURCES: Dict[str, Tuple[str, ...]] = {
    "placeholder": ("placeholder",),
    "helpText": ("helpText", "help_text", "hint"),
    "min": ("min",),
    "max": ("max",),
    "step": ("step",),
    "rows": ("rows",),
    "accept": ("accept",),
    "defaultValue": ("defaultValue", "default_value", "default"),
    "disabled": ("disabled",),
    "readonly": ("readonly", "readOnly"),
    "width": ("width",),
    "customAttributes": ("customAttributes", "custom_attributes"),
}

# Page and flowConfig keys carried through unchanged when a source declares them.
PAGE_PASSTHROUGH_KEYS = ("collapsible", "estimatedTime")
FLOW_PASSTHROUGH_KEYS = (
    "settings",
    "tags",
    "isTemplate",
    "isPublished",
    "usage",
    "createdBy",
    "createdAt",
    "updatedAt",
    "schemaId",
)

_ID_PATTERN = re.compile(r"[^a-z0-9]+")


class NormalizationError(ValueError):
    """Raised when a document cannot be normalised as a whole."""


@dataclass
class NormalizationResult:
    """Canonical output of :func:`normalize`, ready to be stored as a record."""

    title: str
    description: str
    slug: str
    category_id: Optional[str]
    is_active: bool
    service_type: Optional[str]
    form_data: Dict[str, Any]
    structure: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def original_format(self) -> str:
        return str(self.metadata.get("originalFormat", ""))

    def to_record(self) -> Dict[str, Any]:
        """Return the plain dictionary persisted by the form store."""

        return {
            "title": self.title,
            "description": self.description,
            "slug": self.slug,
            "category_id": self.category_id,
            "is_active": self.is_active,
            "service_type": self.service_type,
            "form_data": deepcopy(self.form_data),
            "structure": deepcopy(self.structure),
            "metadata": deepcopy(self.metadata),
        }


def _claim(base: str, used: Set[str]) -> str:
    unique = base
    suffix = 2
    while unique in used:
        unique = f"{base}_{suffix}"
        suffix += 1
    used.add(unique)
    return unique


@dataclass
class _DocumentContext:
    """Per-document counters keeping generated identifiers unique.

    Page ids and element ids are separate namespaces; a duplicate keeps its
    first occurrence under the source id, so copied conditionals still resolve.
    """

    used_ids: Set[str] = field(default_factory=set)
    page_ids: Set[str] = field(default_factory=set)
    conditionals: List[Dict[str, Any]] = field(default_factory=list)
    completion_actions: List[Dict[str, Any]] = field(default_factory=list)

    def claim_id(self, candidate: str) -> str:
        return _claim(candidate or "field", self.used_ids)

    def claim_page_id(self, candidate: str) -> str:
        return _claim(candidate or "page", self.page_ids)

    def next_rule_id(self) -> str:
        return f"rule_{len(self.conditionals) + 1}"


@dataclass(frozen=True)
class FormatHandler:
    """A named predicate and transformer for one external document shape."""

    name: str
    matches: Callable[[Mapping], bool]
    transform: Callable[[Mapping, str, _DocumentContext], List[Dict[str, Any]]]


def _ensure_mapping(value: Any) -> Dict[str, Any]:
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def _first_present(source: Mapping, keys: Iterable[str]) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None and value != "":
            return value
    return None


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _identifier(text: str) -> str:
    return _ID_PATTERN.sub("_", text.lower()).strip("_")


def _label_from_key(key: str) -> str:
    return key.replace("_", " ").replace("-", " ").strip().title()


# ---------------------------------------------------------------------------
# Elements
# ---------------------------------------------------------------------------


def _normalise_options(raw: Any) -> List[Dict[str, Any]]:
    options: List[Dict[str, Any]] = []
    if isinstance(raw, Mapping):
        for value, label in raw.items():
            options.append({"label": _text(label) or _text(value), "value": value})
        return options
    if not isinstance(raw, list):
        return options
    for entry in raw:
        if isinstance(entry, Mapping):
            value = _first_present(entry, ("value", "id", "label", "text", "name"))
            label = _first_present(entry, ("label", "text", "name", "value"))
            if value is None:
                continue
            option = {"label": _text(label) or _text(value), "value": value}
            if entry.get("description"):
                option["description"] = entry["description"]
            options.append(option)
        elif entry is not None:
            options.append({"label": _text(entry), "value": entry})
    return options


def _normalise_element(
    raw: Mapping, context: _DocumentContext, key: Optional[str] = None
) -> Dict[str, Any]:
    """Map one source element onto the canonical element shape."""

    label = _text(_first_present(raw, ("label", "title", "question", "text", "name")))
    source_id = (
        _text(_first_present(raw, ("id", "key"))) or _text(key) or _identifier(_text(raw.get("name")))
    )
    if not label:
        label = _label_from_key(source_id) if source_id else "Untitled Field"
    element_id = context.claim_id(source_id or _identifier(label))

    field_type = map_field_type(raw.get("type") or raw.get("fieldType"))
    validation = map_validation_rules(raw.get("validation") or raw.get("validations"))
    declared_required = validation.pop("required", False)
    required = bool(raw.get("required") or declared_required)

    element: Dict[str, Any] = {
        "id": element_id,
        "type": field_type.value,
        "label": label,
        "required": required,
    }
    for output_key, source_keys in ELEMENT_ATTRIBUTE_SOURCES.items():
        value = _first_present(raw, source_keys)
        if value is not None:
            element[output_key] = value
    options = _normalise_options(raw.get("options") or raw.get("choices"))
    if options:
        element["options"] = options
    if validation:
        element["validation"] = validation
    return element


def _is_group(raw: Mapping) -> bool:
    kind = _text(raw.get("type")).lower()
    nested = raw.get("fields", raw.get("elements"))
    return kind in GROUP_TYPES or isinstance(nested, (list, Mapping))


def _iter_source_elements(raw: Any) -> Iterable[Tuple[Optional[str], Mapping]]:
    """Yield ``(key, element)`` pairs from a list or a ``{key: element}`` mapping."""

    if isinstance(raw, Mapping):
        for key, value in raw.items():
            if isinstance(value, Mapping):
                yield str(key), value
            elif isinstance(value, str):
                yield str(key), {"type": value}
    elif isinstance(raw, list):
        for value in raw:
            if isinstance(value, Mapping):
                yield None, value


def _flatten_elements(
    raw: Any, context: _DocumentContext, *, flatten_groups: bool
) -> Iterable[Tuple[Mapping, Dict[str, Any]]]:
    """Yield ``(source, element)`` pairs, expanding grouped elements in place."""

    for key, source in _iter_source_elements(raw):
        if flatten_groups and _is_group(source):
            nested = source.get("fields", source.get("elements", []))
            yield from _flatten_elements(nested, context, flatten_groups=True)
            continue
        yield source, _normalise_element(source, context, key)


# ---------------------------------------------------------------------------
# Conditional logic
# ---------------------------------------------------------------------------


def _normalise_condition(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, Mapping):
        return None
    field_id = _text(_first_present(raw, ("field", "fieldId", "field_id", "question", "source")))
    operator = map_operator(_first_present(raw, ("operator", "condition", "op")))
    if not field_id or operator is None:
        logger.debug("Dropping unusable condition %r", raw)
        return None
    return {"field": field_id, "operator": operator.value, "value": raw.get("value")}


def _is_rule(raw: Any) -> bool:
    return isinstance(raw, Mapping) and any(
        key in raw for key in ("conditions", "action", "all", "any", "showIf", "show_if", "hideIf", "hide_if")
    )


def _rule_parts(raw: Mapping) -> Tuple[str, str, List[Any]]:
    """Return ``(action, logic, conditions)`` for one source rule."""

    for key, action in (("showIf", "show"), ("show_if", "show"), ("hideIf", "hide"), ("hide_if", "hide")):
        if key in raw:
            inner = raw[key]
            if _is_rule(inner):
                _, logic, conditions = _rule_parts(inner)
                return action, logic, conditions
            conditions = inner if isinstance(inner, list) else [inner]
            return action, map_logic(raw.get("logic")), conditions

    action = map_action(raw.get("action")).value
    if isinstance(raw.get("conditions"), list):
        logic = map_logic(_first_present(raw, ("logic", "logicType", "match")))
        return action, logic, raw["conditions"]
    for mode in ("all", "any"):
        if isinstance(raw.get(mode), list):
            return action, mode, raw[mode]
    return action, "all", []


def _translate_logic(
    raw: Any, target: str, target_type: str, context: _DocumentContext
) -> None:
    """Append canonical conditionals for ``raw`` targeting ``target``."""

    if not raw:
        return
    if isinstance(raw, list) and not any(_is_rule(item) for item in raw):
        raw = {"conditions": raw}
    rules = raw if isinstance(raw, list) else [raw]

    for rule in rules:
        if not isinstance(rule, Mapping):
            continue
        if _is_rule(rule):
            action, logic, raw_conditions = _rule_parts(rule)
        else:
            action, logic, raw_conditions = "show", "all", [rule]
        conditions = [
            condition
            for condition in (_normalise_condition(item) for item in raw_conditions)
            if condition is not None
        ]
        if not conditions:
            logger.debug("Skipping conditional on %s %s without usable conditions", target_type, target)
            continue
        context.conditionals.append(
            {
                "id": _text(rule.get("id")) or context.next_rule_id(),
                "target": target,
                "targetType": target_type,
                "action": action,
                "logic": logic,
                "conditions": conditions,
            }
        )


def _translate_completion(raw: Any, step_id: str, context: _DocumentContext) -> None:
    """Turn a ``{action_type: config}`` mapping into ordered completion actions."""

    if not isinstance(raw, Mapping):
        return
    for action_type, config in raw.items():
        if config is False or config is None:
            continue
        if config is True:
            config = {}
        elif not isinstance(config, Mapping):
            config = {"value": config}
        context.completion_actions.append(
            {
                "type": str(action_type),
                "order": len(context.completion_actions) + 1,
                "config": deepcopy(dict(config)),
                "stepId": step_id,
            }
        )


# ---------------------------------------------------------------------------
# Format handlers
# ---------------------------------------------------------------------------


def _matches_page_based(payload: Mapping) -> bool:
    return isinstance(payload.get("pages"), list)


def _transform_page_based(
    payload: Mapping, title: str, context: _DocumentContext
) -> List[Dict[str, Any]]:
    pages: List[Dict[str, Any]] = []
    for index, raw_page in enumerate(payload["pages"], start=1):
        page = _ensure_mapping(raw_page)
        page_id = context.claim_page_id(_text(page.get("id")) or f"page_{index}")
        raw_elements = page.get("elements", page.get("fields", []))
        elements = [element for _, element in _flatten_elements(raw_elements, context, flatten_groups=False)]
        normalised = {
            "id": page_id,
            "title": _text(page.get("title")) or f"Page {index}",
            "description": _text(page.get("description")),
            "elements": elements,
        }
        for key in PAGE_PASSTHROUGH_KEYS:
            if page.get(key) is not None:
                normalised[key] = deepcopy(page[key])
        pages.append(normalised)

    if isinstance(payload.get("conditionals"), list):
        context.conditionals.extend(deepcopy(payload["conditionals"]))
    if isinstance(payload.get("completionActions"), list):
        context.completion_actions.extend(deepcopy(payload["completionActions"]))
    return pages


def _matches_step_based(payload: Mapping) -> bool:
    return isinstance(payload.get("steps"), list)


def _transform_step_based(
    payload: Mapping, title: str, context: _DocumentContext
) -> List[Dict[str, Any]]:
    if isinstance(payload.get("completionActions"), list):
        context.completion_actions.extend(deepcopy(payload["completionActions"]))

    pages: List[Dict[str, Any]] = []
    for index, raw_step in enumerate(payload["steps"], start=1):
        step = _ensure_mapping(raw_step)
        step_id = context.claim_page_id(_text(step.get("id")) or f"step_{index}")
        raw_elements = _first_present(step, ("fields", "elements", "questions")) or []

        elements: List[Dict[str, Any]] = []
        for source, element in _flatten_elements(raw_elements, context, flatten_groups=True):
            elements.append(element)
            field_logic = _first_present(source, ("conditionalLogic", "conditional_logic"))
            _translate_logic(field_logic, element["id"], "field", context)
            for key in ("showIf", "show_if", "hideIf", "hide_if"):
                if source.get(key):
                    _translate_logic({key: source[key]}, element["id"], "field", context)

        _translate_logic(
            _first_present(step, ("conditionalLogic", "conditional_logic")), step_id, "page", context
        )
        _translate_completion(step.get("completion"), step_id, context)
        pages.append(
            {
                "id": step_id,
                "title": _text(_first_present(step, ("title", "name"))) or f"Step {index}",
                "description": _text(step.get("description")),
                "elements": elements,
            }
        )
    return pages


def _simple_field_source(payload: Mapping) -> Any:
    fields = payload.get("fields")
    if isinstance(fields, (Mapping, list)):
        return fields
    return {
        key: value
        for key, value in payload.items()
        if key not in SIMPLE_OBJECT_RESERVED_KEYS and isinstance(value, Mapping) and "type" in value
    }


def _matches_simple_object(payload: Mapping) -> bool:
    return bool(_simple_field_source(payload))


def _transform_simple_object(
    payload: Mapping, title: str, context: _DocumentContext
) -> List[Dict[str, Any]]:
    source = _simple_field_source(payload)
    elements = [element for _, element in _flatten_elements(source, context, flatten_groups=True)]
    page_id = context.claim_page_id("page_1")
    return [{"id": page_id, "title": title, "description": "", "elements": elements}]


FORMAT_HANDLERS: Tuple[FormatHandler, ...] = (
    FormatHandler("page-based", _matches_page_based, _transform_page_based),
    FormatHandler("step-based", _matches_step_based, _transform_step_based),
    FormatHandler("simple-object", _matches_simple_object, _transform_simple_object),
)


def detect_format(payload: Any) -> Optional[FormatHandler]:
    """Return the first handler that claims ``payload``, or ``None``."""

    if not isinstance(payload, Mapping):
        return None
    for handler in FORMAT_HANDLERS:
        if handler.matches(payload):
            return handler
    return None


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _extract_title(payload: Mapping, flow: Mapping) -> str:
    return _text(payload.get("title")) or _text(flow.get("title")) or _text(payload.get("name"))


def _flow_config(payload: Mapping, flow: Mapping, title: str, description: str) -> Dict[str, Any]:
    def pick(key: str, default: Any) -> Any:
        value = _first_present(flow, (key,))
        if value is None:
            value = _first_present(payload, (key,))
        return default if value is None else value

    config = {
        "title": title,
        "description": description,
        "version": str(pick("version", DEFAULT_SCHEMA_VERSION)),
        "completionMessage": pick("completionMessage", DEFAULT_COMPLETION_MESSAGE),
        "estimatedTime": pick("estimatedTime", DEFAULT_ESTIMATED_TIME),
        "theme": pick("theme", DEFAULT_THEME),
    }
    category = _first_present(payload, ("category",)) or _first_present(flow, ("category",))
    if category is not None:
        config["category"] = category
    for key in FLOW_PASSTHROUGH_KEYS:
        if flow.get(key) is not None:
            config[key] = deepcopy(flow[key])
    return config


def normalize(payload: Any, existing_slugs: Iterable[str] = ()) -> NormalizationResult:
    """Normalise ``payload`` into a :class:`NormalizationResult`.

    ``existing_slugs`` is the universe of slugs already in use; the generated
    slug never collides with any of them. Raises :class:`NormalizationError`
    when the payload is not a JSON object, has no recognised shape, or has no
    title to derive a slug from. No partial result is ever returned.
    """

    if payload is None:
        raise NormalizationError("Form JSON is empty.")
    if isinstance(payload, list):
        raise NormalizationError("Form JSON must be an object, not an array.")
    if not isinstance(payload, Mapping):
        raise NormalizationError(f"Form JSON must be an object, got {type(payload).__name__}.")

    handler = detect_format(payload)
    if handler is None:
        raise NormalizationError(
            "Unrecognised form format: expected 'pages', 'steps' or a field mapping."
        )

    flow = _ensure_mapping(payload.get("flowConfig"))
    title = _extract_title(payload, flow)
    if not title:
        raise NormalizationError("Form JSON has no title to derive a slug from.")
    description = _text(payload.get("description")) or _text(flow.get("description"))

    logger.info("Normalising form %r using the %s format", title, handler.name)
    context = _DocumentContext()
    pages = handler.transform(payload, title, context)

    source_validation = _ensure_mapping(payload.get("validation"))
    required_fields = [
        element["id"]
        for page in pages
        for element in page["elements"]
        if element.get("required")
    ]
    form_data = {
        "flowConfig": _flow_config(payload, flow, title, description),
        "pages": pages,
        "conditionals": context.conditionals,
        "completionActions": context.completion_actions,
        "validation": {
            "requiredFields": required_fields,
            "validateOnSubmit": bool(source_validation.get("validateOnSubmit", True)),
        },
    }

    category = form_data["flowConfig"].get("category")
    category_id = _first_present(payload, ("categoryId", "category_id"))
    is_active = _first_present(payload, ("isActive", "is_active"))
    return NormalizationResult(
        title=title,
        description=description,
        slug=unique_slug(title, existing_slugs),
        category_id=str(category_id) if category_id is not None else None,
        is_active=True if is_active is None else bool(is_active),
        service_type=map_service_type(category),
        form_data=form_data,
        structure=deepcopy(form_data),
        metadata={
            "originalFormat": handler.name,
            "normalizedAt": utc_now().isoformat(),
            "pageCount": len(pages),
            "fieldCount": sum(len(page["elements"]) for page in pages),
        },
    )
