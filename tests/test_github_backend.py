"""Tests for the GitHub Contents API form repository."""

from __future__ import annotations

import base64
import json
from pathlib import Path
import sys
from typing import Any, Dict, List, Optional

import pytest
import requests

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from form_engine import github_backend  # noqa: E402
from form_engine.config import GitHubSettings  # noqa: E402
from form_engine.github_backend import GitHubFormRepository  # noqa: E402


class _FakeResponse:
    def __init__(self, status_code: int, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class _FakeGitHub:
    """Records calls and answers GET requests from a ``url -> response`` table."""

    def __init__(self, responses: Dict[str, _FakeResponse]) -> None:
        self.responses = responses
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, headers: Dict[str, str], params: Dict[str, str], timeout: int) -> _FakeResponse:
        self.calls.append({"method": "GET", "url": url, "headers": headers, "params": params, "timeout": timeout})
        return self.responses.get(url, _FakeResponse(404))

    def put(self, url: str, headers: Dict[str, str], json: Dict[str, Any], timeout: int) -> _FakeResponse:
        self.calls.append({"method": "PUT", "url": url, "json": json, "timeout": timeout})
        return _FakeResponse(201, {"content": {"path": url}})


BASE = "https://api.github.com/repos/acme/forms/contents"


@pytest.fixture
def repository() -> GitHubFormRepository:
    return GitHubFormRepository(token="secret", repo="acme/forms", base_path="/form_schemas/", branch="dev")


def _install(monkeypatch, responses: Optional[Dict[str, _FakeResponse]] = None) -> _FakeGitHub:
    fake = _FakeGitHub(responses or {})
    monkeypatch.setattr(github_backend.requests, "get", fake.get)
    monkeypatch.setattr(github_backend.requests, "put", fake.put)
    return fake


def _encoded(record: Dict[str, Any]) -> str:
    return base64.b64encode(json.dumps(record).encode("utf-8")).decode("utf-8")


def test_from_settings_copies_connection_details() -> None:
    settings = GitHubSettings(repo="acme/forms", token="t", branch="dev", base_path="forms", api_url="https://ghe/api")

    repository = GitHubFormRepository.from_settings(settings)

    assert (repository.repo, repository.token, repository.branch) == ("acme/forms", "t", "dev")
    assert repository.record_path("intake") == "forms/intake/form.json"
    assert repository._url("forms") == "https://ghe/api/repos/acme/forms/contents/forms"


def test_list_slugs_returns_sorted_directories(monkeypatch, repository) -> None:
    listing = [
        {"name": "weight-loss", "type": "dir"},
        {"name": "README.md", "type": "file"},
        {"name": "consultation", "type": "dir"},
    ]
    fake = _install(monkeypatch, {f"{BASE}/form_schemas": _FakeResponse(200, listing)})

    assert repository.list_slugs() == ["consultation", "weight-loss"]
    call = fake.calls[0]
    assert call["params"] == {"ref": "dev"}
    assert call["headers"]["Authorization"] == "Bearer secret"
    assert call["timeout"] == 10


def test_list_slugs_when_base_path_is_missing(monkeypatch, repository) -> None:
    _install(monkeypatch)

    assert repository.list_slugs() == []


def test_read_record_decodes_content(monkeypatch, repository) -> None:
    record = {"slug": "intake", "title": "Intake"}
    _install(
        monkeypatch,
        {f"{BASE}/form_schemas/intake/form.json": _FakeResponse(200, {"content": _encoded(record), "sha": "abc"})},
    )

    assert repository.read_record("intake") == record
    assert repository.read_record("missing") is None


def test_read_record_rejects_unknown_encoding(monkeypatch, repository) -> None:
    _install(
        monkeypatch,
        {f"{BASE}/form_schemas/intake/form.json": _FakeResponse(200, {"content": "x", "encoding": "none"})},
    )

    with pytest.raises(ValueError):
        repository.read_record("intake")


def test_server_errors_propagate(monkeypatch, repository) -> None:
    _install(monkeypatch, {f"{BASE}/form_schemas": _FakeResponse(500)})

    with pytest.raises(requests.HTTPError):
        repository.list_slugs()


def test_write_record_creates_new_file(monkeypatch, repository) -> None:
    fake = _install(monkeypatch)

    repository.write_record({"slug": "intake", "title": "Intake"})

    put = fake.calls[-1]
    assert put["method"] == "PUT"
    assert put["url"] == f"{BASE}/form_schemas/intake/form.json"
    assert put["json"]["branch"] == "dev"
    assert put["json"]["message"] == "Update form intake"
    assert "sha" not in put["json"]
    decoded = json.loads(base64.b64decode(put["json"]["content"]).decode("utf-8"))
    assert decoded == {"slug": "intake", "title": "Intake"}


def test_write_record_updates_existing_file_with_sha(monkeypatch, repository) -> None:
    fake = _install(
        monkeypatch,
        {f"{BASE}/form_schemas/intake/form.json": _FakeResponse(200, {"sha": "abc123", "content": ""})},
    )

    repository.write_record({"slug": "intake"}, message="Edit intake")

    put = fake.calls[-1]
    assert put["json"]["sha"] == "abc123"
    assert put["json"]["message"] == "Edit intake"


def test_write_record_requires_slug(monkeypatch, repository) -> None:
    fake = _install(monkeypatch)

    with pytest.raises(ValueError):
        repository.write_record({"title": "No slug"})
    assert fake.calls == []
