"""Helpers for working with normalised form records on disk.

Each record lives in ``<root>/<slug>/form.json``; the directory names are the
slug universe handed to :func:`form_engine.normalizer.normalize`.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from form_engine.conversion import schema_to_page_payload
from form_engine.models import FormSchema
from form_engine.normalizer import NormalizationResult, normalize

logger = logging.getLogger(__name__)

FORM_RECORD_FILENAME = "form.json"
SCHEMAS_ROOT = Path("form_schemas")


def discover_local_forms(root: Path = SCHEMAS_ROOT) -> Dict[str, Path]:
    """Return a mapping of ``slug -> path`` for local form records."""

    forms: Dict[str, Path] = {}
    if root.exists():
        for entry in sorted(root.iterdir()):
            if not entry.is_dir():
                continue
            record_path = entry / FORM_RECORD_FILENAME
            if record_path.exists():
                forms[entry.name] = record_path
    return forms


def existing_slugs(root: Path = SCHEMAS_ROOT) -> List[str]:
    return list(discover_local_forms(root).keys())


def ensure_form_directory(slug: str, root: Path = SCHEMAS_ROOT) -> Path:
    """Ensure the directory for ``slug`` exists and return it."""

    target_dir = root / slug
    target_dir.mkdir(parents=True, exist_ok=True)
    return target_dir


def save_record(record: Mapping[str, Any], root: Path = SCHEMAS_ROOT) -> Path:
    """Write ``record`` to ``<root>/<slug>/form.json`` and return the path."""

    slug = str(record.get("slug") or "").strip()
    if not slug:
        raise ValueError("Form record is missing a slug.")
    path = ensure_form_directory(slug, root) / FORM_RECORD_FILENAME
    with path.open("w", encoding="utf-8") as handle:
        json.dump(dict(record), handle, indent=2, ensure_ascii=False)
        handle.write("\n")
    logger.info("Saved form record %s", path)
    return path


def load_record(slug: str, root: Path = SCHEMAS_ROOT) -> Optional[Dict[str, Any]]:
    """Return the stored record for ``slug`` or ``None`` when it does not exist."""

    path = root / slug / FORM_RECORD_FILENAME
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    return dict(payload) if isinstance(payload, Mapping) else None


def load_records(root: Path = SCHEMAS_ROOT) -> Dict[str, Dict[str, Any]]:
    """Load every local record, skipping files that are not valid JSON."""

    records: Dict[str, Dict[str, Any]] = {}
    for slug, path in discover_local_forms(root).items():
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Skipping unreadable form record %s: %s", path, exc)
            continue
        if isinstance(payload, Mapping):
            records[slug] = dict(payload)
    return records


def delete_record(slug: str, root: Path = SCHEMAS_ROOT) -> bool:
    """Remove the record for ``slug``; return ``False`` when nothing was stored."""

    path = root / slug / FORM_RECORD_FILENAME
    if not path.exists():
        return False
    path.unlink()
    directory = path.parent
    if not any(directory.iterdir()):
        directory.rmdir()
    logger.info("Deleted form record %s", slug)
    return True


def import_form(payload: Any, root: Path = SCHEMAS_ROOT) -> NormalizationResult:
    """Normalise ``payload`` against the stored slugs and persist the result."""

    result = normalize(payload, existing_slugs(root))
    save_record(result.to_record(), root)
    return result


def save_schema(schema: FormSchema, slug: str, root: Path = SCHEMAS_ROOT) -> NormalizationResult:
    """Store an edited ``schema`` under its existing ``slug``.

    The schema is rendered as a page-based document and normalised again so the
    stored ``form_data`` stays canonical. Record level flags of an existing
    record (``category_id``, ``is_active``) are carried over.
    """

    others = [existing for existing in existing_slugs(root) if existing != slug]
    payload = schema_to_page_payload(schema)
    previous = load_record(slug, root) or {}
    if previous.get("category_id") is not None:
        payload["categoryId"] = previous["category_id"]
    if "is_active" in previous:
        payload["isActive"] = bool(previous["is_active"])

    result = normalize(payload, others)
    result.slug = slug
    save_record(result.to_record(), root)
    return result
