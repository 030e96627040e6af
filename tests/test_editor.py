"""Tests for the schema editing session."""

from __future__ import annotations

import json
from pathlib import Path
import random
import sys
from typing import List

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from form_engine.editor import EditorSession, EditorState  # noqa: E402
from form_engine.models import (  # noqa: E402
    Condition,
    ConditionalRule,
    FieldType,
    FormSchema,
    RuleAction,
)


@pytest.fixture
def session() -> EditorSession:
    return EditorSession(title="Intake", created_by="coach")


def _assert_orders_contiguous(schema: FormSchema) -> None:
    assert [section.order for section in schema.sections] == list(range(len(schema.sections)))
    for section in schema.sections:
        assert [item.order for item in section.fields] == list(range(len(section.fields)))
    ids = schema.field_ids()
    assert len(ids) == len(set(ids))


def test_new_session_is_clean(session) -> None:
    assert session.schema.title == "Intake"
    assert session.is_dirty is False
    assert session.can_undo() is False
    assert session.can_redo() is False


def test_add_section_selects_it_and_is_undoable(session) -> None:
    section_id = session.add_section("About you", "Basics")

    assert session.schema.sections[0].id == section_id
    assert session.schema.sections[0].description == "Basics"
    assert session.selected_section_id == section_id
    assert session.selected_field_id is None
    assert session.is_dirty is True
    assert session.can_undo() is True


def test_add_field_inserts_at_index_and_selects(session) -> None:
    section_id = session.add_section("One")
    first = session.add_field(section_id, FieldType.TEXT)
    second = session.add_field(section_id, "email", index=0)

    fields = session.schema.find_section(section_id).fields
    assert [item.id for item in fields] == [second, first]
    assert [item.order for item in fields] == [0, 1]
    assert session.selected_field_id == second
    assert session.selected_section_id is None


def test_add_field_to_unknown_section_is_a_no_op(session) -> None:
    before = session.schema
    history_length = len(session.history)

    assert session.add_field("missing", "text") is None
    assert session.add_field(session.add_section("One"), "hologram") is None
    assert session.schema.sections[0].fields == []
    assert before.sections == []
    assert len(session.history) == history_length + 1


def test_delete_unknown_field_changes_nothing(session) -> None:
    section_id = session.add_section("One")
    field_id = session.add_field(section_id, "text")
    snapshot = session.schema.to_dict()
    history_length = len(session.history)
    history_index = session.history.index
    revision = session.revision

    assert session.delete_field("not-a-field") is False

    assert session.schema.to_dict() == snapshot
    assert session.selected_field_id == field_id
    assert len(session.history) == history_length
    assert session.history.index == history_index
    assert session.revision == revision


def test_delete_field_clears_selection_and_renumbers(session) -> None:
    section_id = session.add_section("One")
    ids = [session.add_field(section_id, "text") for _ in range(3)]

    assert session.delete_field(ids[2]) is True
    assert session.selected_field_id is None
    fields = session.schema.find_section(section_id).fields
    assert [item.id for item in fields] == ids[:2]
    assert [item.order for item in fields] == [0, 1]


def test_delete_section_clears_selected_child_field(session) -> None:
    keep = session.add_section("Keep")
    drop = session.add_section("Drop")
    field_id = session.add_field(drop, "number")
    session.select_field(field_id)

    assert session.delete_section(drop) is True
    assert [section.id for section in session.schema.sections] == [keep]
    assert session.selected_field_id is None


def test_move_section_clamps_target_index(session) -> None:
    ids = [session.add_section(f"S{number}") for number in range(3)]

    assert session.move_section(ids[0], 99) is True
    assert [section.id for section in session.schema.sections] == [ids[1], ids[2], ids[0]]
    assert session.move_section(ids[0], -5) is True
    assert [section.id for section in session.schema.sections] == ids
    _assert_orders_contiguous(session.schema)


def test_move_field_across_sections(session) -> None:
    source = session.add_section("Source")
    target = session.add_section("Target")
    moving = session.add_field(source, "text")
    staying = session.add_field(source, "text")
    existing = session.add_field(target, "text")

    assert session.move_field(moving, target, 0) is True

    assert [item.id for item in session.schema.find_section(source).fields] == [staying]
    assert [item.id for item in session.schema.find_section(target).fields] == [moving, existing]
    _assert_orders_contiguous(session.schema)


def test_move_field_to_unknown_section_is_a_no_op(session) -> None:
    source = session.add_section("Source")
    field_id = session.add_field(source, "text")
    history_length = len(session.history)

    assert session.move_field(field_id, "missing", 0) is False
    assert session.schema.find_section(source).fields[0].id == field_id
    assert len(session.history) == history_length


def test_duplicate_field_copies_after_original(session) -> None:
    section_id = session.add_section("One")
    original = session.add_field(section_id, "select")
    session.update_field(original, label="Favourite fruit")

    duplicate = session.duplicate_field(original)

    fields = session.schema.find_section(section_id).fields
    assert [item.id for item in fields] == [original, duplicate]
    assert fields[1].label == "Favourite fruit (Copy)"
    assert fields[1].options == fields[0].options
    assert fields[1].options is not fields[0].options
    assert session.selected_field_id == duplicate


def test_update_field_does_not_push_history(session) -> None:
    section_id = session.add_section("One")
    field_id = session.add_field(section_id, "text")
    history_length = len(session.history)

    assert session.update_field(field_id, label="Name", required=True, id="hijack", bogus=1) is True

    item = session.schema.get_field(field_id)
    assert (item.label, item.required) == ("Name", True)
    assert len(session.history) == history_length
    session.save_to_history()
    assert len(session.history) == history_length + 1


def test_update_field_coerces_rule_dicts(session) -> None:
    section_id = session.add_section("One")
    field_id = session.add_field(section_id, "text")

    session.update_field(
        field_id,
        conditional_logic=[{"action": "show", "when": {"field": "age", "operator": "greater_than", "value": 65}}],
        type="textarea",
    )

    item = session.schema.get_field(field_id)
    assert item.type is FieldType.TEXTAREA
    assert isinstance(item.conditional_logic[0], ConditionalRule)
    assert session.update_field(field_id, type="hologram") is False
    assert session.update_field("missing", label="x") is False


def test_update_section_ignores_protected_keys(session) -> None:
    section_id = session.add_section("One")

    assert session.update_section(section_id, title="Renamed", order=7) is True
    section = session.schema.find_section(section_id)
    assert (section.title, section.order) == ("Renamed", 0)
    assert session.update_section(section_id, fields=[]) is False


def test_undo_redo_restores_exact_snapshots(session) -> None:
    section_id = session.add_section("One")
    after_section = session.schema.to_dict()
    session.add_field(section_id, "text")
    after_field = session.schema.to_dict()

    assert session.undo() is True
    assert session.schema.to_dict() == after_section
    assert session.selected_field_id is None
    assert session.redo() is True
    assert session.schema.to_dict() == after_field
    assert session.redo() is False


def test_new_edit_after_undo_drops_redo(session) -> None:
    section_id = session.add_section("One")
    session.add_field(section_id, "text")
    session.undo()
    session.add_field(section_id, "number")

    assert session.can_redo() is False


def test_random_edit_sequences_keep_orders_contiguous() -> None:
    rng = random.Random(20240611)
    types: List[str] = [member.value for member in FieldType]

    for _ in range(25):
        session = EditorSession(title="Fuzz", history_limit=500)
        initial = session.schema.to_dict()
        for _ in range(40):
            schema = session.schema
            section_ids = [section.id for section in schema.sections] + ["ghost-section"]
            field_ids = schema.field_ids() + ["ghost-field"]
            operation = rng.choice(
                ["add_section", "add_field", "delete_field", "move_field", "move_section", "duplicate", "delete_section"]
            )
            if operation == "add_section" or not schema.sections:
                session.add_section(f"S{rng.randint(0, 99)}")
            elif operation == "add_field":
                session.add_field(rng.choice(section_ids), rng.choice(types), rng.randint(-2, 8))
            elif operation == "delete_field":
                session.delete_field(rng.choice(field_ids))
            elif operation == "move_field":
                session.move_field(rng.choice(field_ids), rng.choice(section_ids), rng.randint(-3, 10))
            elif operation == "move_section":
                session.move_section(rng.choice(section_ids), rng.randint(-3, 10))
            elif operation == "duplicate":
                session.duplicate_field(rng.choice(field_ids))
            else:
                session.delete_section(rng.choice(section_ids))
            _assert_orders_contiguous(session.schema)

        final = session.schema.to_dict()
        while session.can_undo():
            session.undo()
            _assert_orders_contiguous(session.schema)
        assert session.schema.to_dict() == initial
        while session.can_redo():
            session.redo()
        assert session.schema.to_dict() == final


def test_selection_of_unknown_ids_is_ignored(session) -> None:
    section_id = session.add_section("One")

    session.select_field("missing")
    assert session.selected_section_id == section_id
    session.select_section("missing")
    assert session.selected_section_id == section_id
    session.select_section(None)
    assert session.selected_section_id is None


def test_preview_mode_clears_selection(session) -> None:
    session.add_section("One")

    session.set_preview_mode(True)
    assert session.is_preview_mode is True
    assert session.selected_section_id is None


def test_toggle_section_collapse(session) -> None:
    section_id = session.add_section("One")

    session.toggle_section_collapse(section_id)
    assert section_id in session.collapsed_sections
    session.toggle_section_collapse(section_id)
    assert section_id not in session.collapsed_sections


def test_update_form_metadata_merges_settings(session) -> None:
    stamp = session.schema.updated_at

    session.update_form_metadata(title="Renamed", settings={"multi_step": True}, unknown="x")

    assert session.schema.title == "Renamed"
    assert session.schema.settings.multi_step is True
    assert session.schema.settings.submit_button_text == "Submit"
    assert session.schema.updated_at >= stamp
    assert session.can_undo() is False


def test_create_new_form_resets_history(session) -> None:
    session.add_section("One")
    session.create_new_form("Fresh")

    assert session.schema.title == "Fresh"
    assert session.schema.sections == []
    assert session.can_undo() is False
    assert session.is_dirty is False


def test_validate_records_issues(session) -> None:
    issues = session.validate()

    assert [issue.location for issue in issues] == ["form-sections"]
    assert session.validation_errors == tuple(issues)


def test_export_import_round_trip(session) -> None:
    section_id = session.add_section("One")
    field_id = session.add_field(section_id, "number")
    session.update_field(
        field_id,
        conditional_logic=[ConditionalRule(action=RuleAction.SHOW, when=Condition(field="age", value=3))],
    )
    exported = session.export_schema()
    envelope = json.loads(exported)
    assert envelope["version"] == "1.0.0"
    assert envelope["exported_by"] == "coach"

    other = EditorSession()
    assert other.import_schema(exported) is True
    assert other.schema == session.schema
    assert other.is_dirty is False
    assert other.can_undo() is False


@pytest.mark.parametrize("payload", ["not json", "[]", json.dumps({"schema": {"title": "no id"}}), b"{}"])
def test_import_rejects_bad_payloads(session, payload) -> None:
    before = session.schema

    assert session.import_schema(payload) is False
    assert session.schema is before


def test_listeners_receive_state_until_unsubscribed(session) -> None:
    received: List[EditorState] = []
    unsubscribe = session.subscribe(received.append)

    session.add_section("One")
    assert len(received) == 1
    assert received[0].schema is session.schema
    assert received[0].can_undo is True

    unsubscribe()
    session.add_section("Two")
    assert len(received) == 1


def test_each_change_produces_a_new_schema_object(session) -> None:
    before = session.schema
    session.add_section("One")

    assert session.schema is not before
    assert before.sections == []


def test_mark_saved_clears_dirty_flag(session) -> None:
    session.add_section("One")
    session.mark_saved()

    assert session.is_dirty is False


def test_import_rejects_duplicate_ids(session) -> None:
    section_id = session.add_section("One")
    session.add_field(section_id, "text")
    second = session.add_section("Two")
    session.add_field(second, "number")
    envelope = json.loads(session.export_schema())
    sections = envelope["schema"]["sections"]
    sections[1]["fields"][0]["id"] = sections[0]["fields"][0]["id"]

    other = EditorSession()
    before = other.schema
    assert other.import_schema(envelope) is False
    assert other.schema is before

    sections[1]["fields"][0]["id"] = "unique"
    sections[1]["id"] = sections[0]["id"]
    assert other.import_schema(envelope) is False


def test_import_renumbers_order_to_positions(session) -> None:
    section_id = session.add_section("One")
    session.add_field(section_id, "text")
    session.add_field(section_id, "email")
    session.add_section("Two")
    envelope = json.loads(session.export_schema())
    envelope["schema"]["sections"][0]["order"] = 7
    envelope["schema"]["sections"][0]["fields"][1]["order"] = 9

    other = EditorSession()
    assert other.import_schema(envelope) is True
    _assert_orders_contiguous(other.schema)
