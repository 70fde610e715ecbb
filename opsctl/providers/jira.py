"""Jira Cloud REST API v3 provider (issues only)."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import quote

import structlog

from opsctl.errors import MissingCredential, ProviderRequestFailed, ScopeUnresolved
from opsctl.models import RemoteItem
from opsctl.providers.base import FetchRequest, ProviderAdapter
from opsctl.providers.http import base_url, basic_auth, get_json, strip_html
from opsctl.settings import OpsSettings

log = structlog.get_logger(__name__)

FIELDS = "summary,description,status,assignee,reporter,labels,updated,project"

# nodes whose children are inline text; everything else stacks its children as lines
_INLINE_CONTAINERS = {"paragraph", "heading", "codeBlock"}


def adf_to_text(node: Any) -> str:
    """Flatten an Atlassian Document Format tree to plain text."""
    if not isinstance(node, dict):
        return ""
    if isinstance(node.get("text"), str):
        return node["text"]
    if node.get("type") == "hardBreak":
        return "\n"
    children = [adf_to_text(child) for child in node.get("content") or []]
    separator = "" if node.get("type") in _INLINE_CONTAINERS else "\n"
    return separator.join(text for text in children if text).strip()


def _user_name(user: dict | None) -> str:
    if not user:
        return ""
    return user.get("displayName") or user.get("emailAddress") or user.get("accountId") or ""


class JiraProvider(ProviderAdapter):
    id = "jira"

    def __init__(self, settings: OpsSettings) -> None:
        self._settings = settings

    def _base(self) -> str:
        base = base_url(self._settings.jira_base_url)
        if not base:
            raise MissingCredential("JIRA_BASE_URL", provider="jira")
        return base

    def _headers(self) -> dict[str, str]:
        if not self._settings.jira_email:
            raise MissingCredential("JIRA_EMAIL", provider="jira")
        if not self._settings.jira_api_token:
            raise MissingCredential("JIRA_API_TOKEN", provider="jira")
        return {"Authorization": basic_auth(self._settings.jira_email, self._settings.jira_api_token.get_secret_value())}

    def detect_repo(self, cwd: Path) -> str:
        # Jira has no repository; the project key is the scope.
        if self._settings.jira_project:
            return self._settings.jira_project
        raise ScopeUnresolved("Could not resolve Jira project. Set --repo PROJECT or JIRA_PROJECT.")

    def fetch_item(self, request: FetchRequest) -> RemoteItem:
        if request.kind != "issue":
            raise ProviderRequestFailed("Jira provider supports issues only.", provider="jira")
        base = self._base()
        headers = self._headers()
        project = (request.repo or "").strip() or self._settings.jira_project
        issue_key = f"{project}-{request.number}" if project else str(request.number)

        log.info("fetching item", provider="jira", kind=request.kind, key=issue_key)
        node = get_json("jira", f"{base}/rest/api/3/issue/{quote(issue_key, safe='')}", headers, {"fields": FIELDS})
        fields = node.get("fields") or {}

        description = fields.get("description")
        body = strip_html(description) if isinstance(description, str) else adf_to_text(description)
        assignee = _user_name(fields.get("assignee"))
        return RemoteItem(
            provider="jira",
            kind="issue",
            key=str(request.number),
            repo=(fields.get("project") or {}).get("key") or project or "jira",
            number=request.number,
            title=fields.get("summary") or node["key"],
            body=body,
            author=_user_name(fields.get("reporter")),
            state=(fields.get("status") or {}).get("name") or "",
            url=f"{base}/browse/{node['key']}",
            labels=[name for name in fields.get("labels") or [] if name],
            assignees=[assignee] if assignee else [],
            updated_at=fields.get("updated") or datetime.now(timezone.utc).isoformat(),
        )

    @staticmethod
    def item_ref(item: RemoteItem) -> str:
        return f"{item.repo}-{item.number}"
