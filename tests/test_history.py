"""Tests for the undo/redo history stack."""

from __future__ import annotations

from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from form_engine.history import HistoryManager  # noqa: E402
from form_engine.schema_defaults import create_default_schema  # noqa: E402


def _titled(title: str):
    return create_default_schema(title)


def test_new_history_cannot_undo_or_redo() -> None:
    history = HistoryManager()

    assert len(history) == 0
    assert history.can_undo() is False
    assert history.can_redo() is False
    assert history.undo() is None
    assert history.redo() is None
    assert history.current() is None


def test_undo_and_redo_walk_the_stack() -> None:
    history = HistoryManager()
    history.reset(_titled("v1"))
    history.save(_titled("v2"))
    history.save(_titled("v3"))

    assert history.undo().title == "v2"
    assert history.undo().title == "v1"
    assert history.undo() is None
    assert history.redo().title == "v2"
    assert history.current().schema.title == "v2"


def test_save_discards_redo_branch() -> None:
    history = HistoryManager()
    history.reset(_titled("v1"))
    history.save(_titled("v2"))
    history.undo()
    history.save(_titled("v2b"))

    assert history.can_redo() is False
    assert [snapshot.schema.title for snapshot in history.snapshots()] == ["v1", "v2b"]


def test_limit_drops_oldest_snapshots() -> None:
    history = HistoryManager(limit=3)
    history.reset(_titled("v0"))
    for number in range(1, 6):
        history.save(_titled(f"v{number}"))

    assert len(history) == 3
    assert history.index == 2
    assert [snapshot.schema.title for snapshot in history.snapshots()] == ["v3", "v4", "v5"]


def test_snapshots_are_isolated_from_the_live_schema() -> None:
    history = HistoryManager()
    live = _titled("original")
    history.reset(live)
    live.title = "mutated"

    restored = history.current().schema
    assert restored.title == "original"
    restored.title = "also mutated"
    assert history.current().schema.title == "original"


def test_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        HistoryManager(limit=0)
