"""Editing session for a single form schema.

An :class:`EditorSession` is created by whichever caller opens an editing
context; nothing here is global. Every operation builds a fresh
:class:`~form_engine.models.FormSchema` from a deep copy of the current one,
so observers comparing ``session.schema`` (or ``session.revision``) by
identity see each change. Structural edits (add, delete, move, duplicate)
record a history snapshot; keystroke level updates do not, and callers
decide when to call :meth:`EditorSession.save_to_history` for those.

Operations that reference an unknown section or field id leave the session
untouched.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from copy import deepcopy
from dataclasses import dataclass, fields as dataclass_fields
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple, Union

from form_engine.history import HistoryManager
from form_engine.models import (
    ConditionalRule,
    Field,
    FieldType,
    FormSchema,
    FormSettings,
    Option,
    Section,
    SchemaFormatError,
    ValidationRule,
    new_id,
    utc_now,
)
from form_engine.schema_defaults import (
    DEFAULT_FORM_TITLE,
    DEFAULT_HISTORY_LIMIT,
    DUPLICATE_LABEL_SUFFIX,
    EXPORT_FORMAT_VERSION,
    create_default_field,
    create_default_schema,
)
from form_engine.validation import ValidationIssue, validate_schema

logger = logging.getLogger(__name__)

_KEEP = object()

PROTECTED_SECTION_KEYS = frozenset({"id", "fields", "order"})
PROTECTED_FIELD_KEYS = frozenset({"id", "order"})
METADATA_KEYS = frozenset(
    {"title", "description", "version", "created_by", "tags", "category", "is_template", "is_published", "settings"}
)


@dataclass(frozen=True)
class EditorState:
    """Read-only view of an editing session handed to observers."""

    schema: FormSchema
    selected_field_id: Optional[str]
    selected_section_id: Optional[str]
    is_dirty: bool
    is_preview_mode: bool
    collapsed_sections: FrozenSet[str]
    validation_errors: Tuple[ValidationIssue, ...]
    revision: int
    can_undo: bool
    can_redo: bool


Listener = Callable[[EditorState], None]


def _clamp(index: Optional[int], length: int) -> int:
    if index is None:
        return length
    return max(0, min(int(index), length))


def _renumber(items: Sequence[Union[Section, Field]]) -> None:
    for position, item in enumerate(items):
        item.order = position


def _check_unique_ids(schema: FormSchema) -> None:
    seen_sections: Set[str] = set()
    seen_fields: Set[str] = set()
    for section in schema.sections:
        if section.id in seen_sections:
            raise SchemaFormatError(f"Duplicate section id {section.id!r}.")
        seen_sections.add(section.id)
        for item in section.fields:
            if item.id in seen_fields:
                raise SchemaFormatError(f"Duplicate field id {item.id!r}.")
            seen_fields.add(item.id)


def _coerce_rules(value: Any) -> List[ConditionalRule]:
    return [
        rule if isinstance(rule, ConditionalRule) else ConditionalRule.from_dict(rule)
        for rule in value or []
    ]


def _coerce_field_value(key: str, value: Any) -> Any:
    if key == "type":
        return FieldType(value)
    if key == "options":
        if value is None:
            return None
        return [option if isinstance(option, Option) else Option.from_dict(option) for option in value]
    if key == "validation":
        return [rule if isinstance(rule, ValidationRule) else ValidationRule.from_dict(rule) for rule in value or []]
    if key == "conditional_logic":
        return _coerce_rules(value)
    return deepcopy(value)


def _apply_patch(target: Any, patch: Mapping[str, Any], protected: FrozenSet[str], coerce: Callable[[str, Any], Any]) -> bool:
    """Assign known attributes from ``patch`` onto ``target``."""

    known = {item.name for item in dataclass_fields(target)}
    changed = False
    for key, value in patch.items():
        if key in protected or key not in known:
            logger.debug("Ignoring patch key %r for %s", key, type(target).__name__)
            continue
        setattr(target, key, coerce(key, value))
        changed = True
    return changed


class EditorSession:
    """Owns the schema being edited along with selection and history state."""

    def __init__(
        self,
        schema: Optional[FormSchema] = None,
        *,
        title: str = DEFAULT_FORM_TITLE,
        created_by: str = "",
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.created_by = created_by
        self.history = HistoryManager(history_limit)
        self._listeners: List[Listener] = []
        self._revision = 0
        self._schema = deepcopy(schema) if schema is not None else create_default_schema(title, created_by=created_by)
        self._selected_field_id: Optional[str] = None
        self._selected_section_id: Optional[str] = None
        self._is_dirty = False
        self._is_preview_mode = False
        self._collapsed_sections: FrozenSet[str] = frozenset()
        self._validation_errors: Tuple[ValidationIssue, ...] = ()
        self.history.reset(self._schema)

    # ------------------------------------------------------------------
    # Observable state

    @property
    def schema(self) -> FormSchema:
        """The current schema. Treat it as read-only; edit through the session."""

        return self._schema

    @property
    def selected_field_id(self) -> Optional[str]:
        return self._selected_field_id

    @property
    def selected_section_id(self) -> Optional[str]:
        return self._selected_section_id

    @property
    def is_dirty(self) -> bool:
        return self._is_dirty

    @property
    def is_preview_mode(self) -> bool:
        return self._is_preview_mode

    @property
    def collapsed_sections(self) -> FrozenSet[str]:
        return self._collapsed_sections

    @property
    def validation_errors(self) -> Tuple[ValidationIssue, ...]:
        return self._validation_errors

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def state(self) -> EditorState:
        return EditorState(
            schema=self._schema,
            selected_field_id=self._selected_field_id,
            selected_section_id=self._selected_section_id,
            is_dirty=self._is_dirty,
            is_preview_mode=self._is_preview_mode,
            collapsed_sections=self._collapsed_sections,
            validation_errors=self._validation_errors,
            revision=self._revision,
            can_undo=self.can_undo(),
            can_redo=self.can_redo(),
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for state changes and return an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        self._revision += 1
        if not self._listeners:
            return
        snapshot = self.state
        for listener in list(self._listeners):
            listener(snapshot)

    def _working_copy(self) -> FormSchema:
        return deepcopy(self._schema)

    def _commit(
        self,
        schema: FormSchema,
        *,
        selected_field: Any = _KEEP,
        selected_section: Any = _KEEP,
        dirty: bool = True,
        push_history: bool = False,
    ) -> None:
        self._schema = schema
        if selected_field is not _KEEP:
            self._selected_field_id = selected_field
        if selected_section is not _KEEP:
            self._selected_section_id = selected_section
        if dirty:
            self._is_dirty = True
        if push_history:
            self.history.save(schema)
        self._notify()

    # ------------------------------------------------------------------
    # Schema lifecycle

    def load_form(self, schema: FormSchema) -> None:
        """Replace the edited schema, renumber section and field order, and start a fresh history."""

        self._schema = deepcopy(schema)
        _renumber(self._schema.sections)
        for section in self._schema.sections:
            _renumber(section.fields)
        self._selected_field_id = None
        self._selected_section_id = None
        self._is_dirty = False
        self._validation_errors = ()
        self._collapsed_sections = frozenset()
        self.history.reset(self._schema)
        self._notify()

    def create_new_form(self, title: str) -> None:
        self.load_form(create_default_schema(title, created_by=self.created_by))

    def update_form_metadata(self, **updates: Any) -> None:
        """Merge top-level metadata (title, description, settings, ...)."""

        schema = self._working_copy()
        changed = False
        for key, value in updates.items():
            if key not in METADATA_KEYS:
                logger.debug("Ignoring metadata key %r", key)
                continue
            if key == "settings":
                if isinstance(value, FormSettings):
                    schema.settings = deepcopy(value)
                else:
                    merged = {**schema.settings.to_dict(), **dict(value)}
                    schema.settings = FormSettings.from_dict(merged)
            else:
                setattr(schema, key, deepcopy(value))
            changed = True
        if not changed:
            return
        schema.updated_at = utc_now()
        self._commit(schema)

    # ------------------------------------------------------------------
    # Sections

    def add_section(self, title: str, description: Optional[str] = None) -> str:
        """Append a new section, select it and return its id."""

        schema = self._working_copy()
        section = Section(
            id=new_id(),
            title=title,
            description=description or "",
            fields=[],
            order=len(schema.sections),
        )
        schema.sections.append(section)
        self._commit(schema, selected_section=section.id, selected_field=None, push_history=True)
        return section.id

    def update_section(self, section_id: str, **patch: Any) -> bool:
        schema = self._working_copy()
        section = schema.find_section(section_id)
        if section is None:
            logger.debug("update_section: unknown section %r", section_id)
            return False

        def coerce(key: str, value: Any) -> Any:
            return _coerce_rules(value) if key == "conditional_logic" else deepcopy(value)

        try:
            changed = _apply_patch(section, patch, PROTECTED_SECTION_KEYS, coerce)
        except (TypeError, ValueError) as exc:
            logger.debug("update_section: rejected patch for %r: %s", section_id, exc)
            return False
        if not changed:
            return False
        self._commit(schema)
        return True

    def delete_section(self, section_id: str) -> bool:
        schema = self._working_copy()
        section = schema.find_section(section_id)
        if section is None:
            logger.debug("delete_section: unknown section %r", section_id)
            return False

        schema.sections.remove(section)
        _renumber(schema.sections)
        selected_section: Any = _KEEP
        selected_field: Any = _KEEP
        if self._selected_section_id == section_id:
            selected_section = None
        if self._selected_field_id in {item.id for item in section.fields}:
            selected_field = None
        self._commit(
            schema,
            selected_section=selected_section,
            selected_field=selected_field,
            push_history=True,
        )
        return True

    def move_section(self, section_id: str, new_index: int) -> bool:
        schema = self._working_copy()
        section = schema.find_section(section_id)
        if section is None:
            logger.debug("move_section: unknown section %r", section_id)
            return False

        schema.sections.remove(section)
        schema.sections.insert(_clamp(new_index, len(schema.sections)), section)
        _renumber(schema.sections)
        self._commit(schema, push_history=True)
        return True

    # ------------------------------------------------------------------
    # Fields

    def add_field(
        self,
        section_id: str,
        field_type: Union[FieldType, str],
        index: Optional[int] = None,
    ) -> Optional[str]:
        """Insert a default field of ``field_type`` and return its id."""

        schema = self._working_copy()
        section = schema.find_section(section_id)
        if section is None:
            logger.debug("add_field: unknown section %r", section_id)
            return None

        try:
            item = create_default_field(field_type)
        except ValueError:
            logger.debug("add_field: unsupported field type %r", field_type)
            return None
        section.fields.insert(_clamp(index, len(section.fields)), item)
        _renumber(section.fields)
        self._commit(schema, selected_field=item.id, selected_section=None, push_history=True)
        return item.id

    def update_field(self, field_id: str, **patch: Any) -> bool:
        schema = self._working_copy()
        item = schema.get_field(field_id)
        if item is None:
            logger.debug("update_field: unknown field %r", field_id)
            return False
        try:
            changed = _apply_patch(item, patch, PROTECTED_FIELD_KEYS, _coerce_field_value)
        except (TypeError, ValueError) as exc:
            logger.debug("update_field: rejected patch for %r: %s", field_id, exc)
            return False
        if not changed:
            return False
        self._commit(schema)
        return True

    def delete_field(self, field_id: str) -> bool:
        schema = self._working_copy()
        located = schema.find_field(field_id)
        if located is None:
            logger.debug("delete_field: unknown field %r", field_id)
            return False

        section, index = located
        del section.fields[index]
        _renumber(section.fields)
        selected_field: Any = None if self._selected_field_id == field_id else _KEEP
        self._commit(schema, selected_field=selected_field, push_history=True)
        return True

    def move_field(self, field_id: str, target_section_id: str, new_index: int) -> bool:
        """Move a field within or across sections, renumbering both sides."""

        schema = self._working_copy()
        located = schema.find_field(field_id)
        target = schema.find_section(target_section_id)
        if located is None or target is None:
            logger.debug("move_field: unknown field %r or section %r", field_id, target_section_id)
            return False

        source, index = located
        item = source.fields.pop(index)
        _renumber(source.fields)
        target.fields.insert(_clamp(new_index, len(target.fields)), item)
        _renumber(target.fields)
        self._commit(schema, push_history=True)
        return True

    def duplicate_field(self, field_id: str) -> Optional[str]:
        schema = self._working_copy()
        located = schema.find_field(field_id)
        if located is None:
            logger.debug("duplicate_field: unknown field %r", field_id)
            return None

        section, index = located
        duplicate = deepcopy(section.fields[index])
        duplicate.id = new_id()
        duplicate.label = f"{duplicate.label}{DUPLICATE_LABEL_SUFFIX}"
        section.fields.insert(index + 1, duplicate)
        _renumber(section.fields)
        self._commit(schema, selected_field=duplicate.id, selected_section=None, push_history=True)
        return duplicate.id

    # ------------------------------------------------------------------
    # Selection and UI state

    def select_field(self, field_id: Optional[str]) -> None:
        if field_id is not None and self._schema.get_field(field_id) is None:
            logger.debug("select_field: unknown field %r", field_id)
            return
        self._selected_field_id = field_id
        self._selected_section_id = None
        self._notify()

    def select_section(self, section_id: Optional[str]) -> None:
        if section_id is not None and self._schema.find_section(section_id) is None:
            logger.debug("select_section: unknown section %r", section_id)
            return
        self._selected_section_id = section_id
        self._selected_field_id = None
        self._notify()

    def set_preview_mode(self, enabled: bool) -> None:
        self._is_preview_mode = bool(enabled)
        if enabled:
            self._selected_field_id = None
            self._selected_section_id = None
        self._notify()

    def toggle_section_collapse(self, section_id: str) -> None:
        if section_id in self._collapsed_sections:
            self._collapsed_sections = self._collapsed_sections - {section_id}
        else:
            self._collapsed_sections = self._collapsed_sections | {section_id}
        self._notify()

    # ------------------------------------------------------------------
    # History

    def save_to_history(self) -> None:
        """Record the current schema, e.g. when a debounced text edit settles."""

        self.history.save(self._schema)
        self._notify()

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    def undo(self) -> bool:
        restored = self.history.undo()
        if restored is None:
            return False
        self._commit(restored, selected_field=None, selected_section=None)
        return True

    def redo(self) -> bool:
        restored = self.history.redo()
        if restored is None:
            return False
        self._commit(restored, selected_field=None, selected_section=None)
        return True

    # ------------------------------------------------------------------
    # Validation and persistence boundary

    def validate(self) -> List[ValidationIssue]:
        issues = validate_schema(self._schema)
        self._validation_errors = tuple(issues)
        self._notify()
        return issues

    def mark_saved(self) -> None:
        """Clear the dirty flag once a caller has persisted the schema."""

        self._is_dirty = False
        self._notify()

    def export_schema(self) -> str:
        """Serialise the schema inside a versioned export envelope."""

        envelope: Dict[str, Any] = {
            "version": EXPORT_FORMAT_VERSION,
            "exported_at": utc_now().isoformat(),
            "exported_by": self._schema.created_by or self.created_by,
            "schema": self._schema.to_dict(),
        }
        return json.dumps(envelope, indent=2)

    def import_schema(self, serialized: Union[str, bytes, Mapping[str, Any]]) -> bool:
        """Load an exported envelope; return ``False`` and change nothing on failure."""

        try:
            if isinstance(serialized, (str, bytes, bytearray)):
                payload = json.loads(serialized)
            else:
                payload = serialized
            if not isinstance(payload, Mapping) or "schema" not in payload:
                raise SchemaFormatError("Export envelope is missing 'schema'.")
            schema = FormSchema.from_dict(payload["schema"])
            _check_unique_ids(schema)
        except (TypeError, ValueError) as exc:
            logger.warning("Rejected schema import: %s", exc)
            return False

        self.load_form(schema)
        return True
