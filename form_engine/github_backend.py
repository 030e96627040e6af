"""Utilities for storing form records with GitHub's Contents API."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import requests

from form_engine.config import DEFAULT_API_URL, GitHubSettings
from form_engine.form_store import FORM_RECORD_FILENAME

logger = logging.getLogger(__name__)


@dataclass
class GitHubFormRepository:
    """Read and write ``<base_path>/<slug>/form.json`` records in a repository."""

    token: str
    repo: str
    base_path: str = "form_schemas"
    branch: str = "main"
    api_url: str = DEFAULT_API_URL

    @classmethod
    def from_settings(cls, settings: GitHubSettings) -> "GitHubFormRepository":
        return cls(
            token=settings.token,
            repo=settings.repo,
            base_path=settings.base_path,
            branch=settings.branch,
            api_url=settings.api_url,
        )

    def _headers(self) -> Dict[str, str]:
        """Build request headers for the GitHub API."""

        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "Content-Type": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{self.api_url.rstrip('/')}/repos/{self.repo}/contents/{path.strip('/')}"

    def record_path(self, slug: str) -> str:
        return f"{self.base_path.strip('/')}/{slug}/{FORM_RECORD_FILENAME}"

    def _get(self, path: str) -> Optional[requests.Response]:
        response = requests.get(
            self._url(path),
            headers=self._headers(),
            params={"ref": self.branch},
            timeout=10,
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response

    def list_slugs(self) -> List[str]:
        """Return the slugs of every record directory under ``base_path``."""

        response = self._get(self.base_path)
        if response is None:
            return []
        entries = response.json()
        if not isinstance(entries, list):
            return []
        return sorted(
            str(entry["name"])
            for entry in entries
            if isinstance(entry, Mapping) and entry.get("type") == "dir" and entry.get("name")
        )

    def get_record_sha(self, slug: str) -> Optional[str]:
        """Retrieve the SHA of the record for ``slug`` if it exists."""

        response = self._get(self.record_path(slug))
        if response is None:
            return None
        return response.json().get("sha")

    def read_record(self, slug: str) -> Optional[Dict[str, Any]]:
        """Read and decode the record for ``slug``; ``None`` when it is missing."""

        response = self._get(self.record_path(slug))
        if response is None:
            return None
        payload = response.json()
        encoding = payload.get("encoding", "base64")
        if encoding != "base64":
            raise ValueError(f"Unsupported encoding: {encoding}")
        decoded = base64.b64decode(payload.get("content", "")).decode("utf-8")
        return json.loads(decoded)

    def write_record(self, record: Mapping[str, Any], message: Optional[str] = None) -> Dict[str, Any]:
        """Create or update the record named by ``record['slug']``."""

        slug = str(record.get("slug") or "").strip()
        if not slug:
            raise ValueError("Form record is missing a slug.")

        payload: Dict[str, Any] = {
            "message": message or f"Update form {slug}",
            "branch": self.branch,
            "content": base64.b64encode(
                json.dumps(dict(record), indent=2).encode("utf-8")
            ).decode("utf-8"),
        }
        sha = self.get_record_sha(slug)
        if sha:
            payload["sha"] = sha

        response = requests.put(
            self._url(self.record_path(slug)),
            headers=self._headers(),
            json=payload,
            timeout=10,
        )
        response.raise_for_status()
        logger.info("Wrote form record %s to %s@%s", slug, self.repo, self.branch)
        return response.json()
