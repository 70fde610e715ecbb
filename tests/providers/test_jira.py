"""Tests for JiraProvider using pytest-httpx."""

from pathlib import Path

import httpx
import pytest
from pytest_httpx import HTTPXMock

from opsctl.errors import MissingCredential, ProviderRequestFailed, ScopeUnresolved
from opsctl.providers.base import FetchRequest
from opsctl.providers.http import basic_auth
from opsctl.providers.jira import FIELDS, JiraProvider, adf_to_text
from opsctl.settings import OpsSettings

_BASE = "https://acme.atlassian.net"

_ADF = {
    "type": "doc",
    "content": [
        {"type": "paragraph", "content": [{"type": "text", "text": "First line"}]},
        {
            "type": "paragraph",
            "content": [
                {"type": "text", "text": "Second"},
                {"type": "hardBreak"},
                {"type": "text", "text": "third"},
            ],
        },
    ],
}

_ISSUE_NODE = {
    "key": "PROJ-12",
    "fields": {
        "summary": "Login times out",
        "description": _ADF,
        "status": {"name": "In Progress"},
        "assignee": {"displayName": "Grace Hopper"},
        "reporter": {"emailAddress": "ada@example.com"},
        "labels": ["auth"],
        "updated": "2024-04-01T09:00:00.000+0000",
        "project": {"key": "PROJ"},
    },
}


def _settings(**kwargs) -> OpsSettings:
    defaults = {
        "jira_base_url": f"{_BASE}/",
        "jira_email": "me@example.com",
        "jira_api_token": "tok",
        "jira_project": "PROJ",
    }
    defaults.update(kwargs)
    return OpsSettings(_env_file=None, **defaults)  # type: ignore[call-arg]


def _issue_url(key: str) -> httpx.URL:
    return httpx.URL(f"{_BASE}/rest/api/3/issue/{key}", params={"fields": FIELDS})


def _request(kind: str = "issue", number: int = 12, repo: str | None = None) -> FetchRequest:
    return FetchRequest(kind=kind, key=str(number), number=number, cwd=Path("/repo"), repo=repo)


class TestAdfToText:
    def test_paragraphs_and_breaks(self) -> None:
        assert adf_to_text(_ADF) == "First line\nSecond\nthird"

    def test_non_dict(self) -> None:
        assert adf_to_text(None) == ""


class TestFetchItem:
    def test_issue(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=_issue_url("PROJ-12"),
            json=_ISSUE_NODE,
            match_headers={"Authorization": basic_auth("me@example.com", "tok")},
        )
        item = JiraProvider(_settings()).fetch_item(_request())
        assert item.provider == "jira"
        assert (item.key, item.number, item.repo) == ("12", 12, "PROJ")
        assert item.title == "Login times out"
        assert item.body == "First line\nSecond\nthird"
        assert item.author == "ada@example.com"
        assert item.assignees == ["Grace Hopper"]
        assert item.state == "In Progress"
        assert item.url == f"{_BASE}/browse/PROJ-12"
        assert JiraProvider.item_ref(item) == "PROJ-12"

    def test_repo_overrides_project(self, httpx_mock: HTTPXMock) -> None:
        node = {"key": "OPS-3", "fields": {"summary": "x", "description": "<p>Hello&nbsp;<b>world</b></p>"}}
        httpx_mock.add_response(url=_issue_url("OPS-3"), json=node)
        item = JiraProvider(_settings()).fetch_item(_request(number=3, repo="OPS"))
        assert item.repo == "OPS"
        assert item.body == "Hello world"
        assert item.assignees == []

    def test_pr_not_supported(self) -> None:
        with pytest.raises(ProviderRequestFailed, match="issues only"):
            JiraProvider(_settings()).fetch_item(_request("pr"))

    @pytest.mark.parametrize(
        ("missing", "variable"),
        [("jira_base_url", "JIRA_BASE_URL"), ("jira_email", "JIRA_EMAIL"), ("jira_api_token", "JIRA_API_TOKEN")],
    )
    def test_missing_credentials(self, missing: str, variable: str) -> None:
        with pytest.raises(MissingCredential, match=variable):
            JiraProvider(_settings(**{missing: None})).fetch_item(_request())

    def test_forbidden(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=_issue_url("PROJ-12"), status_code=403)
        with pytest.raises(ProviderRequestFailed, match="Check the jira credentials"):
            JiraProvider(_settings()).fetch_item(_request())


class TestDetectRepo:
    def test_project_key(self) -> None:
        assert JiraProvider(_settings()).detect_repo(Path("/repo")) == "PROJ"

    def test_unresolved(self) -> None:
        with pytest.raises(ScopeUnresolved, match="JIRA_PROJECT"):
            JiraProvider(_settings(jira_project=None)).detect_repo(Path("/repo"))
