"""Runtime settings read from Streamlit secrets."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import streamlit as st

from form_engine.schema_defaults import DEFAULT_HISTORY_LIMIT

logger = logging.getLogger(__name__)

DEFAULT_SCHEMAS_ROOT = Path("form_schemas")
DEFAULT_API_URL = "https://api.github.com"


@dataclass
class GitHubSettings:
    """Where form records are mirrored on GitHub."""

    repo: str = ""
    token: str = ""
    branch: str = "main"
    base_path: str = "form_schemas"
    api_url: str = DEFAULT_API_URL

    @property
    def enabled(self) -> bool:
        return bool(self.repo and self.token)


@dataclass
class EngineSettings:
    history_limit: int = DEFAULT_HISTORY_LIMIT
    schemas_root: Path = DEFAULT_SCHEMAS_ROOT
    default_owner: str = ""
    github: GitHubSettings = field(default_factory=GitHubSettings)


def _secrets_dict(name: str) -> Dict[str, Any]:
    """Return a mapping stored under ``name`` in Streamlit secrets."""

    try:
        value = st.secrets.get(name, {})  # type: ignore[arg-type]
    except FileNotFoundError:
        # No secrets.toml; run with defaults.
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def github_settings(secrets: Optional[Mapping[str, Any]] = None) -> GitHubSettings:
    """Build :class:`GitHubSettings` from the ``github`` secrets section."""

    values = dict(secrets) if secrets is not None else _secrets_dict("github")
    return GitHubSettings(
        repo=str(values.get("repo") or ""),
        token=str(values.get("token") or ""),
        branch=str(values.get("branch") or "main"),
        base_path=str(values.get("base_path") or values.get("path") or "form_schemas").strip("/"),
        api_url=str(values.get("api_url") or DEFAULT_API_URL),
    )


def load_settings() -> EngineSettings:
    """Read the ``form_engine`` and ``github`` secrets sections, with defaults."""

    engine = _secrets_dict("form_engine")
    settings = EngineSettings(
        history_limit=_positive_int(engine.get("history_limit"), DEFAULT_HISTORY_LIMIT),
        schemas_root=Path(engine.get("schemas_root") or DEFAULT_SCHEMAS_ROOT),
        default_owner=str(engine.get("default_owner") or ""),
        github=github_settings(),
    )
    logger.debug(
        "Loaded settings (schemas_root=%s, github=%s)",
        settings.schemas_root,
        "on" if settings.github.enabled else "off",
    )
    return settings
