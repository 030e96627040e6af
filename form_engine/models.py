"""Typed document model for form schemas.

The classes here are plain dataclasses so the editor can deep-copy them for
history snapshots and serialise them to JSON friendly dictionaries without an
ORM. ``from_dict`` is strict: any shape problem raises
:class:`SchemaFormatError` so callers importing a document can reject it as a
whole.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union


class SchemaFormatError(ValueError):
    """Raised when a serialised schema does not have the expected shape."""


def new_id() -> str:
    """Return a fresh random identifier for sections and fields."""

    return uuid.uuid4().hex


def utc_now() -> datetime:
    """Return the current time as an aware UTC ``datetime``."""

    return datetime.now(timezone.utc)


class FieldCategory(str, Enum):
    TEXT_INPUT = "text_input"
    MULTILINE = "multiline"
    NUMERIC = "numeric"
    CHOICE = "choice"
    TEMPORAL = "temporal"
    UPLOAD = "upload"
    LAYOUT = "layout"
    SPECIAL = "special"


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    EMAIL = "email"
    TEL = "tel"
    NUMBER = "number"
    PASSWORD = "password"
    URL = "url"
    DATE = "date"
    DATETIME = "datetime-local"
    TIME = "time"
    SELECT = "select"
    MULTISELECT = "multiselect"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    FILE = "file"
    RANGE = "range"
    COLOR = "color"
    HIDDEN = "hidden"
    SECTION_HEADER = "section-header"
    DIVIDER = "divider"
    HTML_CONTENT = "html-content"
    SIGNATURE = "signature"
    RATING = "rating"
    MATRIX = "matrix"

    @property
    def category(self) -> FieldCategory:
        return FIELD_CATEGORIES[self]

    @property
    def has_options(self) -> bool:
        return self.category is FieldCategory.CHOICE

    @property
    def accepts_input(self) -> bool:
        """``False`` for presentational types that never hold an answer."""

        return self.category is not FieldCategory.LAYOUT


FIELD_CATEGORIES: Dict[FieldType, FieldCategory] = {
    FieldType.TEXT: FieldCategory.TEXT_INPUT,
    FieldType.EMAIL: FieldCategory.TEXT_INPUT,
    FieldType.TEL: FieldCategory.TEXT_INPUT,
    FieldType.PASSWORD: FieldCategory.TEXT_INPUT,
    FieldType.URL: FieldCategory.TEXT_INPUT,
    FieldType.HIDDEN: FieldCategory.TEXT_INPUT,
    FieldType.TEXTAREA: FieldCategory.MULTILINE,
    FieldType.NUMBER: FieldCategory.NUMERIC,
    FieldType.RANGE: FieldCategory.NUMERIC,
    FieldType.RATING: FieldCategory.NUMERIC,
    FieldType.SELECT: FieldCategory.CHOICE,
    FieldType.MULTISELECT: FieldCategory.CHOICE,
    FieldType.RADIO: FieldCategory.CHOICE,
    FieldType.CHECKBOX: FieldCategory.CHOICE,
    FieldType.DATE: FieldCategory.TEMPORAL,
    FieldType.DATETIME: FieldCategory.TEMPORAL,
    FieldType.TIME: FieldCategory.TEMPORAL,
    FieldType.FILE: FieldCategory.UPLOAD,
    FieldType.SECTION_HEADER: FieldCategory.LAYOUT,
    FieldType.DIVIDER: FieldCategory.LAYOUT,
    FieldType.HTML_CONTENT: FieldCategory.LAYOUT,
    FieldType.COLOR: FieldCategory.SPECIAL,
    FieldType.SIGNATURE: FieldCategory.SPECIAL,
    FieldType.MATRIX: FieldCategory.SPECIAL,
}

_UNCATEGORISED = [member.value for member in FieldType if member not in FIELD_CATEGORIES]
if _UNCATEGORISED:  # pragma: no cover - guards against partial edits of the enum
    raise RuntimeError(f"Field types without a category: {', '.join(_UNCATEGORISED)}")


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


class RuleAction(str, Enum):
    SHOW = "show"
    HIDE = "hide"
    REQUIRE = "require"
    DISABLE = "disable"


GROUP_MODES = ("all", "any")
FIELD_WIDTHS = ("full", "half", "third", "quarter")
SEVERITIES = ("error", "warning", "info")


def _require_mapping(value: Any, what: str) -> Mapping:
    if not isinstance(value, Mapping):
        raise SchemaFormatError(f"{what} must be an object.")
    return value


def _require_list(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise SchemaFormatError(f"{what} must be a list.")
    return value


def _optional_number(value: Any, what: str) -> Optional[Union[int, float]]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaFormatError(f"{what} must be a number.")
    return value


def _parse_datetime(value: Any, what: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise SchemaFormatError(f"{what} is not an ISO timestamp.") from exc
    raise SchemaFormatError(f"{what} is required.")


def _enum_value(enum_cls: Any, value: Any, what: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise SchemaFormatError(f"Unsupported {what}: {value!r}") from exc


@dataclass
class Option:
    """A ``label``/``value`` pair offered by a choice field."""

    label: str
    value: Any
    disabled: bool = False
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"label": self.label, "value": self.value}
        if self.disabled:
            payload["disabled"] = True
        if self.description:
            payload["description"] = self.description
        return payload

    @classmethod
    def from_dict(cls, payload: Any) -> "Option":
        data = _require_mapping(payload, "Option")
        if "value" not in data:
            raise SchemaFormatError("Option is missing a value.")
        return cls(
            label=str(data.get("label", data["value"])),
            value=data["value"],
            disabled=bool(data.get("disabled", False)),
            description=str(data.get("description") or ""),
        )


@dataclass
class Condition:
    """Leaf comparison of ``answers[field]`` against ``value``."""

    field: str
    operator: ConditionOperator = ConditionOperator.EQUALS
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "operator": self.operator.value, "value": self.value}

    @classmethod
    def from_dict(cls, payload: Any) -> "Condition":
        data = _require_mapping(payload, "Condition")
        field_ref = data.get("field")
        if not isinstance(field_ref, str) or not field_ref:
            raise SchemaFormatError("Condition is missing 'field'.")
        return cls(
            field=field_ref,
            operator=_enum_value(ConditionOperator, data.get("operator", "equals"), "operator"),
            value=data.get("value"),
        )


@dataclass
class ConditionGroup:
    """Children combined with AND (``all``) or OR (``any``)."""

    mode: str = "all"
    conditions: List["ConditionNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {self.mode: [child.to_dict() for child in self.conditions]}

    @classmethod
    def from_dict(cls, payload: Any) -> "ConditionGroup":
        data = _require_mapping(payload, "Condition group")
        for mode in GROUP_MODES:
            if mode in data:
                children = _require_list(data[mode], f"'{mode}' group")
                return cls(mode=mode, conditions=[condition_from_dict(child) for child in children])
        raise SchemaFormatError("Condition group must define 'all' or 'any'.")


ConditionNode = Union[Condition, ConditionGroup]


def condition_from_dict(payload: Any) -> ConditionNode:
    """Parse either a leaf condition or a nested ``all``/``any`` group."""

    data = _require_mapping(payload, "Condition")
    if any(mode in data for mode in GROUP_MODES):
        return ConditionGroup.from_dict(data)
    return Condition.from_dict(data)


@dataclass
class ConditionalRule:
    """Applies ``action`` to a field whenever ``when`` holds."""

    action: RuleAction
    when: ConditionNode

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action.value, "when": self.when.to_dict()}

    @classmethod
    def from_dict(cls, payload: Any) -> "ConditionalRule":
        data = _require_mapping(payload, "Conditional rule")
        action = _enum_value(RuleAction, data.get("action", "show"), "rule action")
        if "when" in data:
            return cls(action=action, when=condition_from_dict(data["when"]))
        # Flat ``{field, operator, value, action}`` entries.
        return cls(action=action, when=Condition.from_dict(data))


@dataclass
class ValidationRule:
    """A declared constraint on a single field's answer."""

    type: str
    value: Any = None
    message: str = ""
    severity: str = "error"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type, "message": self.message, "severity": self.severity}
        if self.value is not None:
            payload["value"] = self.value
        return payload

    @classmethod
    def from_dict(cls, payload: Any) -> "ValidationRule":
        data = _require_mapping(payload, "Validation rule")
        rule_type = data.get("type")
        if not isinstance(rule_type, str) or not rule_type:
            raise SchemaFormatError("Validation rule is missing 'type'.")
        severity = data.get("severity", "error")
        if severity not in SEVERITIES:
            raise SchemaFormatError(f"Unsupported severity: {severity!r}")
        return cls(
            type=rule_type,
            value=data.get("value"),
            message=str(data.get("message") or ""),
            severity=severity,
        )


@dataclass
class Field:
    id: str
    type: FieldType
    label: str
    placeholder: str = ""
    required: bool = False
    disabled: bool = False
    readonly: bool = False
    width: str = "full"
    order: int = 0
    options: Optional[List[Option]] = None
    min: Optional[Union[int, float]] = None
    max: Optional[Union[int, float]] = None
    step: Optional[Union[int, float]] = None
    rows: Optional[int] = None
    accept: Optional[str] = None
    help_text: str = ""
    default_value: Any = None
    validation: List[ValidationRule] = field(default_factory=list)
    conditional_logic: List[ConditionalRule] = field(default_factory=list)
    custom_attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
            "placeholder": self.placeholder,
            "required": self.required,
            "disabled": self.disabled,
            "readonly": self.readonly,
            "width": self.width,
            "order": self.order,
        }
        if self.options is not None:
            payload["options"] = [option.to_dict() for option in self.options]
        for key in ("min", "max", "step", "rows", "accept"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        if self.help_text:
            payload["help_text"] = self.help_text
        if self.default_value is not None:
            payload["default_value"] = self.default_value
        if self.validation:
            payload["validation"] = [rule.to_dict() for rule in self.validation]
        if self.conditional_logic:
            payload["conditional_logic"] = [rule.to_dict() for rule in self.conditional_logic]
        if self.custom_attributes:
            payload["custom_attributes"] = dict(self.custom_attributes)
        return payload

    @classmethod
    def from_dict(cls, payload: Any) -> "Field":
        data = _require_mapping(payload, "Field")
        field_id = data.get("id")
        if not isinstance(field_id, str) or not field_id:
            raise SchemaFormatError("Field is missing an id.")
        width = data.get("width", "full")
        if width not in FIELD_WIDTHS:
            raise SchemaFormatError(f"Field '{field_id}' has unsupported width {width!r}.")
        options = data.get("options")
        rows = data.get("rows")
        if rows is not None and (isinstance(rows, bool) or not isinstance(rows, int)):
            raise SchemaFormatError(f"Field '{field_id}' rows must be an integer.")
        custom = data.get("custom_attributes") or {}
        return cls(
            id=field_id,
            type=_enum_value(FieldType, data.get("type"), "field type"),
            label=str(data.get("label") or ""),
            placeholder=str(data.get("placeholder") or ""),
            required=bool(data.get("required", False)),
            disabled=bool(data.get("disabled", False)),
            readonly=bool(data.get("readonly", False)),
            width=width,
            order=int(data.get("order", 0)),
            options=None
            if options is None
            else [Option.from_dict(item) for item in _require_list(options, "Field options")],
            min=_optional_number(data.get("min"), "min"),
            max=_optional_number(data.get("max"), "max"),
            step=_optional_number(data.get("step"), "step"),
            rows=rows,
            accept=None if data.get("accept") is None else str(data["accept"]),
            help_text=str(data.get("help_text") or ""),
            default_value=data.get("default_value"),
            validation=[
                ValidationRule.from_dict(item)
                for item in _require_list(data.get("validation"), "Field validation")
            ],
            conditional_logic=[
                ConditionalRule.from_dict(item)
                for item in _require_list(data.get("conditional_logic"), "Field conditional_logic")
            ],
            custom_attributes=dict(_require_mapping(custom, "custom_attributes")),
        )


@dataclass
class Section:
    id: str
    title: str
    description: str = ""
    fields: List[Field] = field(default_factory=list)
    order: int = 0
    conditional_logic: List[ConditionalRule] = field(default_factory=list)
    collapsible: bool = False
    estimated_time: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "order": self.order,
            "fields": [item.to_dict() for item in self.fields],
        }
        if self.conditional_logic:
            payload["conditional_logic"] = [rule.to_dict() for rule in self.conditional_logic]
        if self.collapsible:
            payload["collapsible"] = True
        if self.estimated_time is not None:
            payload["estimated_time"] = self.estimated_time
        return payload

    @classmethod
    def from_dict(cls, payload: Any) -> "Section":
        data = _require_mapping(payload, "Section")
        section_id = data.get("id")
        if not isinstance(section_id, str) or not section_id:
            raise SchemaFormatError("Section is missing an id.")
        estimated = data.get("estimated_time")
        return cls(
            id=section_id,
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            fields=[Field.from_dict(item) for item in _require_list(data.get("fields"), "Section fields")],
            order=int(data.get("order", 0)),
            conditional_logic=[
                ConditionalRule.from_dict(item)
                for item in _require_list(data.get("conditional_logic"), "Section conditional_logic")
            ],
            collapsible=bool(data.get("collapsible", False)),
            estimated_time=None if estimated is None else int(estimated),
        )


@dataclass
class FormSettings:
    multi_step: bool = False
    show_progress: bool = True
    save_progress: bool = True
    allow_partial_submission: bool = False
    require_authentication: bool = False
    theme: str = "default"
    submit_button_text: str = "Submit"
    success_message: str = "Form submitted successfully!"
    error_message: str = "Please fix the errors and try again."

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, payload: Any) -> "FormSettings":
        data = _require_mapping(payload, "Settings")
        defaults = cls()
        values = {key: data.get(key, getattr(defaults, key)) for key in defaults.__dict__}
        return cls(**values)


@dataclass
class UsageStats:
    submissions: int = 0
    views: int = 0
    average_completion_time: float = 0.0
    dropoff_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, payload: Any) -> "UsageStats":
        data = _require_mapping(payload, "Usage")
        return cls(
            submissions=int(data.get("submissions", 0)),
            views=int(data.get("views", 0)),
            average_completion_time=data.get("average_completion_time", 0.0),
            dropoff_rate=data.get("dropoff_rate", 0.0),
        )


@dataclass
class FormSchema:
    """Root form document: metadata, ordered sections and settings."""

    id: str
    title: str
    description: str = ""
    version: str = "1.0.0"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    created_by: str = ""
    sections: List[Section] = field(default_factory=list)
    settings: FormSettings = field(default_factory=FormSettings)
    tags: List[str] = field(default_factory=list)
    category: str = "general"
    is_template: bool = False
    is_published: bool = False
    usage: UsageStats = field(default_factory=UsageStats)

    def find_section(self, section_id: Optional[str]) -> Optional[Section]:
        """Return the section identified by ``section_id`` if present."""

        return next((section for section in self.sections if section.id == section_id), None)

    def find_field(self, field_id: Optional[str]) -> Optional[Tuple[Section, int]]:
        """Return ``(section, index)`` locating ``field_id`` anywhere in the schema."""

        for section in self.sections:
            for index, item in enumerate(section.fields):
                if item.id == field_id:
                    return section, index
        return None

    def get_field(self, field_id: Optional[str]) -> Optional[Field]:
        located = self.find_field(field_id)
        if located is None:
            return None
        section, index = located
        return section.fields[index]

    def iter_fields(self) -> Iterator[Field]:
        for section in self.sections:
            yield from section.fields

    def field_ids(self) -> List[str]:
        return [item.id for item in self.iter_fields()]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "created_by": self.created_by,
            "sections": [section.to_dict() for section in self.sections],
            "settings": self.settings.to_dict(),
            "tags": list(self.tags),
            "category": self.category,
            "is_template": self.is_template,
            "is_published": self.is_published,
            "usage": self.usage.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Any) -> "FormSchema":
        data = _require_mapping(payload, "Schema")
        schema_id = data.get("id")
        if not isinstance(schema_id, str) or not schema_id:
            raise SchemaFormatError("Schema is missing an id.")
        title = data.get("title")
        if not isinstance(title, str):
            raise SchemaFormatError("Schema title must be a string.")
        tags = _require_list(data.get("tags"), "Schema tags")
        return cls(
            id=schema_id,
            title=title,
            description=str(data.get("description") or ""),
            version=str(data.get("version") or "1.0.0"),
            created_at=_parse_datetime(data.get("created_at"), "created_at"),
            updated_at=_parse_datetime(data.get("updated_at"), "updated_at"),
            created_by=str(data.get("created_by") or ""),
            sections=[Section.from_dict(item) for item in _require_list(data.get("sections"), "Schema sections")],
            settings=FormSettings.from_dict(data.get("settings") or {}),
            tags=[str(tag) for tag in tags],
            category=str(data.get("category") or "general"),
            is_template=bool(data.get("is_template", False)),
            is_published=bool(data.get("is_published", False)),
            usage=UsageStats.from_dict(data.get("usage") or {}),
        )
