"""URL-safe slug generation with deterministic collision suffixes."""

from __future__ import annotations

import re
from typing import Iterable

DEFAULT_SLUG = "form"
_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    """Return ``title`` lower-cased with non-alphanumeric runs collapsed to ``-``."""

    slug = _NON_ALPHANUMERIC.sub("-", str(title or "").lower()).strip("-")
    return slug or DEFAULT_SLUG


def unique_slug(title: str, existing_slugs: Iterable[str] = ()) -> str:
    """Return the slug for ``title`` that does not clash with ``existing_slugs``.

    Collisions are resolved by appending ``-2``, ``-3``, ... so the same title
    and the same set of existing slugs always produce the same result.
    """

    taken = {str(slug) for slug in existing_slugs if slug}
    base = slugify(title)
    if base not in taken:
        return base

    suffix = 2
    while True:
        candidate = f"{base}-{suffix}"
        if candidate not in taken:
            return candidate
        suffix += 1
