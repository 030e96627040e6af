"""Default values and factories shared by the editor and the normalizer."""

from __future__ import annotations

from typing import Dict, Union

from form_engine.models import (
    Field,
    FieldCategory,
    FieldType,
    FormSchema,
    FormSettings,
    Option,
    UsageStats,
    new_id,
    utc_now,
)

DEFAULT_FORM_TITLE = "New Form"
DEFAULT_SCHEMA_VERSION = "1.0.0"
DEFAULT_CATEGORY = "general"
DEFAULT_HISTORY_LIMIT = 50
EXPORT_FORMAT_VERSION = "1.0.0"
DUPLICATE_LABEL_SUFFIX = " (Copy)"
DEFAULT_NUMERIC_MIN = 0
DEFAULT_NUMERIC_MAX = 100
DEFAULT_TEXTAREA_ROWS = 4
DEFAULT_FILE_ACCEPT = "*"

DEFAULT_FIELD_LABELS: Dict[FieldType, str] = {
    FieldType.TEXT: "Text Input",
    FieldType.TEXTAREA: "Text Area",
    FieldType.EMAIL: "Email Address",
    FieldType.TEL: "Phone Number",
    FieldType.NUMBER: "Number",
    FieldType.PASSWORD: "Password",
    FieldType.URL: "Website URL",
    FieldType.DATE: "Date",
    FieldType.DATETIME: "Date and Time",
    FieldType.TIME: "Time",
    FieldType.SELECT: "Dropdown",
    FieldType.MULTISELECT: "Multi-Select",
    FieldType.RADIO: "Radio Buttons",
    FieldType.CHECKBOX: "Checkboxes",
    FieldType.FILE: "File Upload",
    FieldType.RANGE: "Range Slider",
    FieldType.COLOR: "Color Picker",
    FieldType.HIDDEN: "Hidden Field",
    FieldType.SECTION_HEADER: "Section Header",
    FieldType.DIVIDER: "Divider",
    FieldType.HTML_CONTENT: "HTML Content",
    FieldType.SIGNATURE: "Digital Signature",
    FieldType.RATING: "Rating",
    FieldType.MATRIX: "Matrix/Grid",
}

DEFAULT_FIELD_PLACEHOLDERS: Dict[FieldType, str] = {
    FieldType.TEXT: "Enter text...",
    FieldType.TEXTAREA: "Enter your message...",
    FieldType.EMAIL: "example@email.com",
    FieldType.TEL: "+1 (555) 123-4567",
    FieldType.NUMBER: "0",
    FieldType.PASSWORD: "Enter password...",
    FieldType.URL: "https://example.com",
    FieldType.DATE: "mm/dd/yyyy",
    FieldType.TIME: "hh:mm",
}


def default_options() -> list[Option]:
    """Return the two placeholder options given to new choice fields."""

    return [Option(label="Option 1", value="option1"), Option(label="Option 2", value="option2")]


def default_settings() -> FormSettings:
    return FormSettings()


def create_default_schema(title: str = DEFAULT_FORM_TITLE, *, created_by: str = "") -> FormSchema:
    """Return an empty schema with standard settings and zeroed usage counters."""

    timestamp = utc_now()
    return FormSchema(
        id=new_id(),
        title=title,
        description="",
        version=DEFAULT_SCHEMA_VERSION,
        created_at=timestamp,
        updated_at=timestamp,
        created_by=created_by,
        sections=[],
        settings=default_settings(),
        tags=[],
        category=DEFAULT_CATEGORY,
        usage=UsageStats(),
    )


def create_default_field(field_type: Union[FieldType, str]) -> Field:
    """Return a new field pre-populated with defaults for ``field_type``.

    ``field_type`` may be the enum member or its string value; an unknown
    string raises ``ValueError``.
    """

    kind = FieldType(field_type)
    item = Field(
        id=new_id(),
        type=kind,
        label=DEFAULT_FIELD_LABELS.get(kind, "Field"),
        placeholder=DEFAULT_FIELD_PLACEHOLDERS.get(kind, ""),
    )

    category = kind.category
    if category is FieldCategory.CHOICE:
        item.options = default_options()
    elif category is FieldCategory.NUMERIC and kind is not FieldType.RATING:
        item.min = DEFAULT_NUMERIC_MIN
        item.max = DEFAULT_NUMERIC_MAX
    elif category is FieldCategory.MULTILINE:
        item.rows = DEFAULT_TEXTAREA_ROWS
    elif category is FieldCategory.UPLOAD:
        item.accept = DEFAULT_FILE_ACCEPT
    return item
