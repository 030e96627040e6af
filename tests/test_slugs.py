"""Tests for slug generation."""

from __future__ import annotations

from pathlib import Path
import random
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from form_engine.slugs import slugify, unique_slug  # noqa: E402


@pytest.mark.parametrize(
    "title,expected",
    [
        ("Weight Loss Intake", "weight-loss-intake"),
        ("  --Hello,   World!--  ", "hello-world"),
        ("Café Menu 2024", "caf-menu-2024"),
        ("!!!", "form"),
        ("", "form"),
    ],
)
def test_slugify(title, expected) -> None:
    assert slugify(title) == expected


def test_collision_appends_numeric_suffix() -> None:
    assert unique_slug("Weight Loss Intake", ["weight-loss-intake"]) == "weight-loss-intake-2"
    assert unique_slug("Weight Loss Intake", ["weight-loss-intake", "weight-loss-intake-2"]) == "weight-loss-intake-3"
    assert unique_slug("Weight Loss Intake", []) == "weight-loss-intake"


def test_unique_slug_is_deterministic_and_collision_free() -> None:
    rng = random.Random(7)
    words = ["intake", "weight", "loss", "check", "form", ""]
    for _ in range(200):
        title = " ".join(rng.choice(words) for _ in range(rng.randint(0, 3)))
        existing = {slugify(title)} | {f"{slugify(title)}-{number}" for number in range(2, rng.randint(2, 6))}
        first = unique_slug(title, existing)
        assert first == unique_slug(title, sorted(existing, reverse=True))
        assert first not in existing
