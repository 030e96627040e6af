"""Streamlit home screen listing the stored form library."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping

import pandas as pd
import streamlit as st

from form_engine.config import load_settings
from form_engine.form_store import delete_record, load_records
from form_engine.ui_theme import apply_app_theme, page_header

TABLE_COLUMNS = ("Slug", "Title", "Format", "Service type", "Pages", "Fields", "Active", "Normalised at")
HOME_SELECTED_SLUG_KEY = "home_selected_slug"


def _parse_timestamp(value: Any) -> tuple[str, float]:
    """Return a display timestamp and sort key."""

    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return text, 0.0
        return dt.strftime("%Y-%m-%d %H:%M"), dt.timestamp()
    return "", 0.0


def library_rows(records: Mapping[str, Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Flatten stored records into table rows, newest first."""

    rows: List[Dict[str, Any]] = []
    for slug, record in records.items():
        metadata = record.get("metadata") if isinstance(record.get("metadata"), Mapping) else {}
        timestamp, sort_key = _parse_timestamp(metadata.get("normalizedAt"))
        rows.append(
            {
                "Slug": slug,
                "Title": record.get("title") or slug,
                "Format": metadata.get("originalFormat", ""),
                "Service type": record.get("service_type") or "n/a",
                "Pages": metadata.get("pageCount", 0),
                "Fields": metadata.get("fieldCount", 0),
                "Active": "Yes" if record.get("is_active", True) else "No",
                "Normalised at": timestamp,
                "_sort_key": sort_key,
            }
        )
    rows.sort(key=lambda row: row["_sort_key"], reverse=True)
    return rows


def main() -> None:
    """Render the home screen."""

    apply_app_theme(page_title="Form library", page_icon="🗂️")
    page_header("Form library", "Browse stored forms, import new ones, or open the builder.")

    settings = load_settings()
    try:
        records = load_records(settings.schemas_root)
    except OSError as exc:
        st.error(f"Unable to read the form library: {exc}")
        return

    rows = library_rows(records)
    total_fields = sum(int(row["Fields"] or 0) for row in rows)
    formats = {row["Format"] for row in rows if row["Format"]}
    metric_col1, metric_col2, metric_col3 = st.columns(3)
    metric_col1.metric("Stored forms", len(rows) or "0")
    metric_col2.metric("Fields across forms", total_fields or "0")
    metric_col3.metric("Source formats", len(formats) or "0")

    st.markdown("---")
    if not rows:
        st.info("No forms stored yet. Import a JSON document or build one from scratch.")
        st.page_link("pages/01_Form_Builder.py", label="Open the form builder", icon="🧩")
        st.page_link("pages/02_Import_Form.py", label="Import form JSON", icon="📥")
        return

    table_df = pd.DataFrame([{key: row[key] for key in TABLE_COLUMNS} for row in rows], columns=TABLE_COLUMNS)
    table_df.insert(0, "Select", table_df["Slug"] == st.session_state.get(HOME_SELECTED_SLUG_KEY))
    edited_df = st.data_editor(
        table_df,
        hide_index=True,
        width="stretch",
        num_rows="fixed",
        key="home_forms_table",
        disabled=list(TABLE_COLUMNS),
        column_config={
            "Select": st.column_config.CheckboxColumn("Select", help="Choose a form to manage."),
        },
    )

    selected_rows = edited_df.loc[edited_df["Select"].astype(bool)]
    if len(selected_rows) > 1:
        st.warning("Select only one form at a time.")
        return
    if selected_rows.empty:
        st.caption("Select a form to inspect or delete it.")
        return

    slug = str(selected_rows.iloc[0]["Slug"])
    st.session_state[HOME_SELECTED_SLUG_KEY] = slug
    record = records.get(slug, {})
    with st.expander(f"Record `{slug}`", expanded=False):
        st.json(record.get("form_data") or {})
    if st.button("Delete form", type="secondary"):
        try:
            removed = delete_record(slug, settings.schemas_root)
        except OSError as exc:
            st.error(f"Failed to delete form: {exc}")
        else:
            if removed:
                st.session_state.pop(HOME_SELECTED_SLUG_KEY, None)
                st.success(f"Deleted `{slug}`.")
                st.rerun()
            else:
                st.warning(f"`{slug}` was already removed.")


if __name__ == "__main__":
    main()
