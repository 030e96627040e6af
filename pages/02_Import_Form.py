"""Import page: normalise external form JSON and store it as a record."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, List, Optional

import streamlit as st

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from form_engine.config import EngineSettings, load_settings
from form_engine.conversion import schema_from_result
from form_engine.editor import EditorSession
from form_engine.form_store import existing_slugs, save_record
from form_engine.github_backend import GitHubFormRepository
from form_engine.normalizer import NormalizationError, NormalizationResult, normalize
from form_engine.ui_theme import apply_app_theme, badge, page_header

RESULT_STATE_KEY = "import_result"
BUILDER_SESSION_KEY = "builder_session"
BUILDER_SLUG_KEY = "builder_slug"


def _known_slugs(settings: EngineSettings) -> List[str]:
    """Return local slugs plus the remote ones when GitHub is configured."""

    slugs = set(existing_slugs(settings.schemas_root))
    if settings.github.enabled:
        try:
            slugs.update(GitHubFormRepository.from_settings(settings.github).list_slugs())
        except Exception as exc:  # pylint: disable=broad-except
            st.warning(f"Could not list forms on GitHub, checking local slugs only: {exc}")
    return sorted(slugs)


def _read_payload(uploaded: Any, pasted: str) -> Optional[Any]:
    raw = uploaded.getvalue().decode("utf-8") if uploaded is not None else pasted
    if not raw.strip():
        st.warning("Upload a JSON file or paste a document first.")
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        st.error(f"Invalid JSON: {exc}")
        return None


def render_result(result: NormalizationResult, settings: EngineSettings) -> None:
    metadata = result.metadata
    st.markdown(
        " ".join(
            [
                badge(result.original_format),
                badge(result.slug),
                badge(result.service_type or "unclassified", "default" if result.service_type else "warning"),
            ]
        ),
        unsafe_allow_html=True,
    )
    pages_col, fields_col, rules_col = st.columns(3)
    pages_col.metric("Pages", metadata.get("pageCount", 0))
    fields_col.metric("Fields", metadata.get("fieldCount", 0))
    rules_col.metric("Conditionals", len(result.form_data.get("conditionals", [])))

    with st.expander("Normalised form data", expanded=False):
        st.json(result.form_data)

    save_col, builder_col = st.columns(2)
    if save_col.button("Save record", type="primary", use_container_width=True):
        try:
            path = save_record(result.to_record(), settings.schemas_root)
        except (OSError, ValueError) as exc:
            st.error(f"Failed to save form: {exc}")
        else:
            st.success(f"Saved `{result.slug}` to {path}.")
            if settings.github.enabled:
                repository = GitHubFormRepository.from_settings(settings.github)
                try:
                    repository.write_record(result.to_record(), message=f"Import form {result.slug}")
                except Exception as exc:  # pylint: disable=broad-except
                    st.error(f"Failed to push form to GitHub: {exc}")
                else:
                    st.success(f"Pushed `{result.slug}` to {settings.github.repo}.")

    if builder_col.button("Open in builder", use_container_width=True):
        session = st.session_state.get(BUILDER_SESSION_KEY)
        if not isinstance(session, EditorSession):
            session = EditorSession(created_by=settings.default_owner, history_limit=settings.history_limit)
            st.session_state[BUILDER_SESSION_KEY] = session
        session.load_form(schema_from_result(result))
        st.session_state[BUILDER_SLUG_KEY] = result.slug
        if hasattr(st, "switch_page"):
            st.switch_page("pages/01_Form_Builder.py")
        else:
            st.info("Use the navigation menu to open the Form builder page.")


def main() -> None:
    """Render the import page."""

    apply_app_theme(page_title="Import form", page_icon="📥")
    page_header(
        "Import form",
        "Paste page-based, step-based or simple field-map JSON to convert it into a stored form.",
    )

    settings = load_settings()
    uploaded = st.file_uploader("Form JSON file", type=["json"])
    pasted = st.text_area("Or paste JSON", height=240, disabled=uploaded is not None)

    if st.button("Normalise"):
        payload = _read_payload(uploaded, pasted)
        if payload is not None:
            try:
                st.session_state[RESULT_STATE_KEY] = normalize(payload, _known_slugs(settings))
            except NormalizationError as exc:
                st.session_state.pop(RESULT_STATE_KEY, None)
                st.error(f"Could not import this document: {exc}")

    result = st.session_state.get(RESULT_STATE_KEY)
    if isinstance(result, NormalizationResult):
        render_result(result, settings)


if __name__ == "__main__":
    main()
