"""Form builder page: edit sections and fields, preview rules, save records."""

from __future__ import annotations

import sys
from datetime import date, time
from pathlib import Path
from typing import Any, Dict, List, Optional

import streamlit as st

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from form_engine.conditions import field_state, should_show_section
from form_engine.config import EngineSettings, load_settings
from form_engine.conversion import schema_from_form_data
from form_engine.editor import EditorSession
from form_engine.form_store import existing_slugs, load_records, save_schema
from form_engine.github_backend import GitHubFormRepository
from form_engine.models import (
    Condition,
    ConditionOperator,
    ConditionalRule,
    Field,
    FieldCategory,
    FieldType,
    Option,
    RuleAction,
)
from form_engine.slugs import unique_slug
from form_engine.ui_theme import apply_app_theme, badge, page_header
from form_engine.validation import completion_percentage, validate_answers

SESSION_STATE_KEY = "builder_session"
SLUG_STATE_KEY = "builder_slug"
ANSWERS_STATE_KEY = "builder_preview_answers"
UNSELECTED_LABEL = "Select an option"
NO_VALUE_OPERATORS = {ConditionOperator.IS_EMPTY, ConditionOperator.IS_NOT_EMPTY}


def _rerun_app() -> None:
    """Trigger a Streamlit rerun using the available API."""

    if hasattr(st, "rerun"):
        st.rerun()
    elif hasattr(st, "experimental_rerun"):
        st.experimental_rerun()


def _get_session(settings: EngineSettings) -> EditorSession:
    session = st.session_state.get(SESSION_STATE_KEY)
    if not isinstance(session, EditorSession):
        session = EditorSession(created_by=settings.default_owner, history_limit=settings.history_limit)
        st.session_state[SESSION_STATE_KEY] = session
    return session


def _parse_options(text: str) -> List[Option]:
    """Parse one option per line, written as ``value|label`` or just ``label``."""

    options: List[Option] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        value, _, label = line.partition("|")
        options.append(Option(label=(label or value).strip(), value=value.strip()))
    return options


def _format_options(options: Optional[List[Option]]) -> str:
    return "\n".join(f"{option.value}|{option.label}" for option in options or [])


def _parse_rule_value(raw: str) -> Any:
    text = raw.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------


def render_sidebar(session: EditorSession, settings: EngineSettings) -> None:
    st.sidebar.subheader("Form")
    new_title = st.sidebar.text_input("New form title", value="", key="builder_new_title")
    if st.sidebar.button("Start a new form", use_container_width=True):
        session.create_new_form(new_title.strip() or "New Form")
        st.session_state.pop(SLUG_STATE_KEY, None)
        st.session_state[ANSWERS_STATE_KEY] = {}
        _rerun_app()

    try:
        records = load_records(settings.schemas_root)
    except OSError as exc:
        st.sidebar.error(f"Unable to read stored forms: {exc}")
        records = {}
    if records:
        choices = [UNSELECTED_LABEL, *records.keys()]
        selected = st.sidebar.selectbox(
            "Open a stored form",
            choices,
            format_func=lambda slug: slug if slug == UNSELECTED_LABEL else str(records[slug].get("title") or slug),
            key="builder_open_slug",
        )
        if selected != UNSELECTED_LABEL and st.sidebar.button("Open", use_container_width=True):
            record = records[selected]
            session.load_form(schema_from_form_data(record.get("form_data") or {}, title=record.get("title")))
            st.session_state[SLUG_STATE_KEY] = selected
            st.session_state[ANSWERS_STATE_KEY] = {}
            _rerun_app()

    st.sidebar.divider()
    st.sidebar.subheader("Export / import")
    st.sidebar.download_button(
        "Download schema JSON",
        data=session.export_schema(),
        file_name=f"{unique_slug(session.schema.title)}.json",
        mime="application/json",
        use_container_width=True,
    )
    uploaded = st.sidebar.file_uploader("Import exported schema", type=["json"], key="builder_import_file")
    if uploaded is not None and st.sidebar.button("Load uploaded schema", use_container_width=True):
        if session.import_schema(uploaded.getvalue()):
            st.session_state.pop(SLUG_STATE_KEY, None)
            _rerun_app()
        else:
            st.sidebar.error("The uploaded file is not an exported form schema.")


# ---------------------------------------------------------------------------
# Toolbar and persistence
# ---------------------------------------------------------------------------


def _persist(session: EditorSession, settings: EngineSettings) -> None:
    slug = st.session_state.get(SLUG_STATE_KEY)
    try:
        if not slug:
            slug = unique_slug(session.schema.title, existing_slugs(settings.schemas_root))
        result = save_schema(session.schema, slug, settings.schemas_root)
    except (OSError, ValueError) as exc:
        st.error(f"Failed to save form: {exc}")
        return
    st.session_state[SLUG_STATE_KEY] = result.slug
    session.mark_saved()
    st.success(f"Saved form as `{result.slug}`.")

    if settings.github.enabled:
        repository = GitHubFormRepository.from_settings(settings.github)
        try:
            repository.write_record(result.to_record(), message=f"Update form {result.slug}")
        except Exception as exc:  # pylint: disable=broad-except
            st.error(f"Saved locally but failed to push to GitHub: {exc}")
        else:
            st.success(f"Pushed `{result.slug}` to {settings.github.repo}.")


def render_toolbar(session: EditorSession, settings: EngineSettings) -> None:
    undo_col, redo_col, validate_col, preview_col, save_col = st.columns(5)
    if undo_col.button("Undo", disabled=not session.can_undo(), use_container_width=True):
        session.undo()
        _rerun_app()
    if redo_col.button("Redo", disabled=not session.can_redo(), use_container_width=True):
        session.redo()
        _rerun_app()
    if validate_col.button("Validate", use_container_width=True):
        session.validate()
    preview = preview_col.toggle("Preview", value=session.is_preview_mode)
    if preview != session.is_preview_mode:
        session.set_preview_mode(preview)
        _rerun_app()
    if save_col.button("Save", type="primary", use_container_width=True):
        _persist(session, settings)

    badges = []
    if session.is_dirty:
        badges.append(badge("Unsaved changes", "warning"))
    slug = st.session_state.get(SLUG_STATE_KEY)
    if slug:
        badges.append(badge(slug))
    if badges:
        st.markdown(" ".join(badges), unsafe_allow_html=True)

    for issue in session.validation_errors:
        message = f"`{issue.location}`: {issue.message}"
        if issue.severity == "error":
            st.error(message)
        else:
            st.warning(message)


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------


def render_metadata(session: EditorSession) -> None:
    schema = session.schema
    with st.expander("Form details", expanded=not schema.sections):
        with st.form("builder_metadata"):
            title = st.text_input("Title", value=schema.title)
            description = st.text_area("Description", value=schema.description)
            category = st.text_input("Category", value=schema.category)
            multi_step = st.checkbox("Show one section per step", value=schema.settings.multi_step)
            submit_text = st.text_input("Submit button text", value=schema.settings.submit_button_text)
            if st.form_submit_button("Apply details"):
                session.update_form_metadata(
                    title=title.strip(),
                    description=description.strip(),
                    category=category.strip() or "general",
                    settings={"multi_step": multi_step, "submit_button_text": submit_text},
                )
                session.save_to_history()
                _rerun_app()


def render_field_row(session: EditorSession, section_id: str, item: Field, position: int, count: int) -> None:
    label_col, up_col, down_col, copy_col, edit_col, delete_col = st.columns([6, 1, 1, 1, 1, 1])
    marker = " ✱" if item.required else ""
    selected = " ◀" if session.selected_field_id == item.id else ""
    label_col.markdown(f"**{item.label or item.id}**{marker} · `{item.type.value}`{selected}")
    if up_col.button("↑", key=f"field_up_{item.id}", disabled=position == 0):
        session.move_field(item.id, section_id, position - 1)
        _rerun_app()
    if down_col.button("↓", key=f"field_down_{item.id}", disabled=position == count - 1):
        session.move_field(item.id, section_id, position + 1)
        _rerun_app()
    if copy_col.button("⧉", key=f"field_copy_{item.id}", help="Duplicate"):
        session.duplicate_field(item.id)
        _rerun_app()
    if edit_col.button("✎", key=f"field_edit_{item.id}", help="Edit"):
        session.select_field(item.id)
        _rerun_app()
    if delete_col.button("✕", key=f"field_delete_{item.id}", help="Delete"):
        session.delete_field(item.id)
        _rerun_app()


def render_sections(session: EditorSession) -> None:
    schema = session.schema
    sections = schema.sections
    for position, section in enumerate(sections):
        collapsed = section.id in session.collapsed_sections
        with st.expander(f"{position + 1}. {section.title or 'Untitled section'}", expanded=not collapsed):
            title_col, up_col, down_col, fold_col, delete_col = st.columns([6, 1, 1, 1, 1])
            new_title = title_col.text_input("Section title", value=section.title, key=f"section_title_{section.id}")
            if new_title != section.title:
                session.update_section(section.id, title=new_title)
            if up_col.button("↑", key=f"section_up_{section.id}", disabled=position == 0):
                session.move_section(section.id, position - 1)
                _rerun_app()
            if down_col.button("↓", key=f"section_down_{section.id}", disabled=position == len(sections) - 1):
                session.move_section(section.id, position + 1)
                _rerun_app()
            if fold_col.button("▾" if collapsed else "▴", key=f"section_fold_{section.id}"):
                session.toggle_section_collapse(section.id)
                _rerun_app()
            if delete_col.button("✕", key=f"section_delete_{section.id}"):
                session.delete_section(section.id)
                _rerun_app()

            for index, item in enumerate(section.fields):
                render_field_row(session, section.id, item, index, len(section.fields))

            type_col, add_col = st.columns([4, 1])
            field_type = type_col.selectbox(
                "Field type",
                [member.value for member in FieldType],
                key=f"section_add_type_{section.id}",
                label_visibility="collapsed",
            )
            if add_col.button("Add field", key=f"section_add_{section.id}", use_container_width=True):
                session.add_field(section.id, field_type)
                _rerun_app()

    title_col, add_col = st.columns([4, 1])
    section_title = title_col.text_input("New section title", key="builder_new_section", label_visibility="collapsed")
    if add_col.button("Add section", use_container_width=True):
        session.add_section(section_title.strip() or f"Section {len(sections) + 1}")
        _rerun_app()


def render_rule_editor(session: EditorSession, item: Field) -> None:
    st.markdown("##### Conditional rules")
    for index, rule in enumerate(item.conditional_logic):
        text_col, delete_col = st.columns([6, 1])
        text_col.code(str(rule.to_dict()), language="json")
        if delete_col.button("✕", key=f"rule_delete_{item.id}_{index}"):
            remaining = [existing for position, existing in enumerate(item.conditional_logic) if position != index]
            session.update_field(item.id, conditional_logic=remaining)
            session.save_to_history()
            _rerun_app()

    other_fields = [other for other in session.schema.iter_fields() if other.id != item.id]
    if not other_fields:
        st.caption("Add more fields to build conditional rules.")
        return
    with st.form(f"rule_builder_{item.id}"):
        action_col, field_col, operator_col, value_col = st.columns(4)
        action = action_col.selectbox("Action", [action.value for action in RuleAction])
        reference = field_col.selectbox(
            "When field",
            [other.id for other in other_fields],
            format_func=lambda field_id: session.schema.get_field(field_id).label or field_id,
        )
        operator = operator_col.selectbox("Operator", [operator.value for operator in ConditionOperator])
        raw_value = value_col.text_input("Value")
        if st.form_submit_button("Add rule"):
            operator_enum = ConditionOperator(operator)
            value = None if operator_enum in NO_VALUE_OPERATORS else _parse_rule_value(raw_value)
            rule = ConditionalRule(
                action=RuleAction(action),
                when=Condition(field=reference, operator=operator_enum, value=value),
            )
            session.update_field(item.id, conditional_logic=[*item.conditional_logic, rule])
            session.save_to_history()
            _rerun_app()


def render_field_inspector(session: EditorSession) -> None:
    item = session.schema.get_field(session.selected_field_id)
    if item is None:
        st.info("Select a field to edit its properties.")
        return

    st.markdown(f"#### Field `{item.id}`")
    with st.form(f"field_inspector_{item.id}"):
        label = st.text_input("Label", value=item.label)
        placeholder = st.text_input("Placeholder", value=item.placeholder)
        help_text = st.text_input("Help text", value=item.help_text)
        width = st.selectbox("Width", ["full", "half", "third", "quarter"], index=["full", "half", "third", "quarter"].index(item.width))
        required_col, disabled_col = st.columns(2)
        required = required_col.checkbox("Required", value=item.required)
        disabled = disabled_col.checkbox("Disabled", value=item.disabled)
        options_text = None
        if item.type.has_options:
            options_text = st.text_area("Options (value|label per line)", value=_format_options(item.options))
        if st.form_submit_button("Apply changes"):
            patch: Dict[str, Any] = {
                "label": label,
                "placeholder": placeholder,
                "help_text": help_text,
                "width": width,
                "required": required,
                "disabled": disabled,
            }
            if options_text is not None:
                patch["options"] = _parse_options(options_text)
            session.update_field(item.id, **patch)
            session.save_to_history()
            _rerun_app()

    render_rule_editor(session, item)
    if st.button("Close inspector"):
        session.select_field(None)
        _rerun_app()


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------


def _option_values(item: Field) -> List[Any]:
    return [option.value for option in item.options or [] if not option.disabled]


def render_preview_field(item: Field, answers: Dict[str, Any]) -> None:
    """Render ``item`` as an input widget and store the answer in ``answers``."""

    state = field_state(item, answers)
    if not state.visible:
        answers.pop(item.id, None)
        return

    label = f"{item.label}{' *' if state.required else ''}"
    key = f"preview_{item.id}"
    current = answers.get(item.id, item.default_value)
    category = item.type.category
    common: Dict[str, Any] = {"key": key, "disabled": state.disabled, "help": item.help_text or None}

    if category is FieldCategory.LAYOUT:
        if item.type is FieldType.DIVIDER:
            st.divider()
        elif item.type is FieldType.SECTION_HEADER:
            st.markdown(f"#### {item.label}")
        else:
            st.markdown(item.label)
        return
    if item.type is FieldType.HIDDEN:
        return

    if category is FieldCategory.TEXT_INPUT:
        value = st.text_input(
            label,
            value="" if current is None else str(current),
            placeholder=item.placeholder or None,
            type="password" if item.type is FieldType.PASSWORD else "default",
            **common,
        )
    elif category is FieldCategory.MULTILINE:
        value = st.text_area(label, value="" if current is None else str(current), height=None, **common)
    elif category is FieldCategory.NUMERIC:
        low = item.min if item.min is not None else 0
        high = item.max if item.max is not None else (5 if item.type is FieldType.RATING else 100)
        if item.type is FieldType.NUMBER:
            value = st.number_input(label, value=current if isinstance(current, (int, float)) else None, **common)
        else:
            start = current if isinstance(current, (int, float)) else low
            value = st.slider(label, min_value=low, max_value=high, value=start, **common)
    elif category is FieldCategory.CHOICE:
        values = _option_values(item)
        labels = {option.value: option.label for option in item.options or []}
        if item.type in {FieldType.MULTISELECT, FieldType.CHECKBOX} and values:
            default = [entry for entry in current or [] if entry in values] if isinstance(current, list) else []
            value = st.multiselect(label, values, default=default, format_func=lambda entry: labels.get(entry, entry), **common)
        elif item.type is FieldType.CHECKBOX:
            value = st.checkbox(label, value=bool(current), **common)
        else:
            choices = [UNSELECTED_LABEL, *values]
            index = choices.index(current) if current in choices else 0
            widget = st.radio if item.type is FieldType.RADIO else st.selectbox
            value = widget(
                label,
                choices,
                index=index,
                format_func=lambda entry: entry if entry == UNSELECTED_LABEL else labels.get(entry, entry),
                **common,
            )
            if value == UNSELECTED_LABEL:
                value = None
    elif category is FieldCategory.TEMPORAL:
        if item.type is FieldType.DATE:
            picked = st.date_input(label, value=date.fromisoformat(current) if isinstance(current, str) and current else None, **common)
            value = picked.isoformat() if picked else None
        elif item.type is FieldType.TIME:
            picked = st.time_input(label, value=time.fromisoformat(current) if isinstance(current, str) and current else None, **common)
            value = picked.isoformat() if picked else None
        else:
            value = st.text_input(label, value=current or "", placeholder="YYYY-MM-DDTHH:MM", **common)
    elif category is FieldCategory.UPLOAD:
        uploaded = st.file_uploader(label, type=None if item.accept in {None, "*"} else item.accept.split(","), **common)
        value = uploaded.name if uploaded is not None else None
    elif item.type is FieldType.COLOR:
        value = st.color_picker(label, value=current if isinstance(current, str) and current else "#000000", **common)
    else:
        value = st.text_area(label, value="" if current is None else str(current), **common)

    if value in (None, "", []):
        answers.pop(item.id, None)
    else:
        answers[item.id] = value


def render_preview(session: EditorSession) -> None:
    schema = session.schema
    answers: Dict[str, Any] = st.session_state.setdefault(ANSWERS_STATE_KEY, {})
    st.markdown(f"### {schema.title}")
    if schema.description:
        st.caption(schema.description)
    st.progress(completion_percentage(schema, answers) / 100, text="Completion")

    for section in schema.sections:
        if not should_show_section(section, answers):
            continue
        st.markdown(f"#### {section.title}")
        if section.description:
            st.caption(section.description)
        for item in section.fields:
            render_preview_field(item, answers)

    if st.button(schema.settings.submit_button_text, type="primary"):
        issues = validate_answers(schema, answers)
        if issues:
            for issue in issues:
                label = schema.get_field(issue.location)
                st.error(f"{label.label if label else issue.location}: {issue.message}")
        else:
            st.success(schema.settings.success_message)
            with st.expander("Submitted answers"):
                st.json(answers)


def main() -> None:
    """Render the form builder page."""

    apply_app_theme(page_title="Form builder", page_icon="🧩")
    page_header("Form builder", "Compose sections and fields, then preview the live form.")

    settings = load_settings()
    session = _get_session(settings)
    render_sidebar(session, settings)
    render_toolbar(session, settings)

    if session.is_preview_mode:
        render_preview(session)
        return

    render_metadata(session)
    editor_col, inspector_col = st.columns([3, 2])
    with editor_col:
        render_sections(session)
    with inspector_col:
        render_field_inspector(session)


if __name__ == "__main__":
    main()
