"""Tests for the pure helpers defined in the Streamlit pages."""

from __future__ import annotations

import importlib.util
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


def _load(name: str, relative_path: str):
    spec = importlib.util.spec_from_file_location(name, REPO_ROOT / relative_path)
    if spec is None or spec.loader is None:  # pragma: no cover
        raise RuntimeError(f"Could not load {relative_path} for testing.")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


BUILDER = _load("form_builder_page", "pages/01_Form_Builder.py")
HOME = _load("home_page", "Home.py")


def test_parse_options_accepts_value_label_pairs() -> None:
    options = BUILDER._parse_options("lose|Lose weight\n\n  maintain  \ngain|")

    assert [(option.value, option.label) for option in options] == [
        ("lose", "Lose weight"),
        ("maintain", "maintain"),
        ("gain", "gain"),
    ]
    assert BUILDER._format_options(options) == "lose|Lose weight\nmaintain|maintain\ngain|gain"
    assert BUILDER._format_options(None) == ""


def test_parse_rule_value_prefers_numbers() -> None:
    assert BUILDER._parse_rule_value(" 65 ") == 65
    assert BUILDER._parse_rule_value("1.5") == 1.5
    assert BUILDER._parse_rule_value("yes") == "yes"


def test_library_rows_are_sorted_newest_first() -> None:
    records = {
        "old": {
            "title": "Old form",
            "service_type": "free",
            "metadata": {"originalFormat": "step-based", "normalizedAt": "2024-01-01T10:00:00+00:00", "fieldCount": 3},
        },
        "new": {
            "title": "New form",
            "is_active": False,
            "metadata": {"originalFormat": "page-based", "normalizedAt": "2024-06-01T10:00:00+00:00", "pageCount": 2},
        },
        "bare": {},
    }

    rows = HOME.library_rows(records)

    assert [row["Slug"] for row in rows] == ["new", "old", "bare"]
    assert rows[0]["Active"] == "No"
    assert rows[0]["Normalised at"] == "2024-06-01 10:00"
    assert rows[1]["Service type"] == "free"
    assert rows[1]["Fields"] == 3
    assert rows[2]["Title"] == "bare"
    assert rows[2]["Format"] == ""


def test_placeholders_are_plain_text() -> None:
    rows = HOME.library_rows({"bare": {}})

    assert rows[0]["Service type"] == "n/a"
    assert BUILDER.UNSELECTED_LABEL == "Select an option"
