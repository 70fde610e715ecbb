"""Azure DevOps provider: work items as issues, Git pull requests as PRs."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import quote

import structlog

from opsctl.errors import MissingCredential, ProviderRequestFailed, ScopeUnresolved
from opsctl.models import RemoteItem
from opsctl.providers.base import FetchRequest, ProviderAdapter
from opsctl.providers.git_remote import AzureScope, origin_url, parse_azure_repo
from opsctl.providers.http import basic_auth, get_json, strip_html
from opsctl.settings import OpsSettings

log = structlog.get_logger(__name__)

API_VERSION = "7.1"


def parse_scope(scope: str) -> AzureScope:
    parts = [part.strip() for part in scope.split("/") if part.strip()]
    if len(parts) == 2:
        return AzureScope(parts[0], parts[1])
    if len(parts) == 3:
        return AzureScope(parts[0], parts[1], parts[2])
    raise ScopeUnresolved(f"Invalid Azure scope '{scope}'. Expected 'org/project' or 'org/project/repo'.")


def _identity(value: Any) -> str:
    if not isinstance(value, dict):
        return ""
    return value.get("uniqueName") or value.get("displayName") or ""


def _branch(ref: str | None) -> str | None:
    return ref.removeprefix("refs/heads/") if ref else None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AzureProvider(ProviderAdapter):
    id = "azure"

    def __init__(self, settings: OpsSettings) -> None:
        self._settings = settings

    def _headers(self) -> dict[str, str]:
        if not self._settings.azure_devops_pat:
            raise MissingCredential("AZURE_DEVOPS_PAT", provider="azure")
        return {"Authorization": basic_auth("", self._settings.azure_devops_pat.get_secret_value())}

    def resolve_scope(self, cwd: Path, repo: str | None = None) -> AzureScope:
        """--repo first, then AZURE_ORG/AZURE_PROJECT[/AZURE_REPO], then the origin remote."""
        if repo:
            return parse_scope(repo)
        settings = self._settings
        if settings.azure_org and settings.azure_project:
            return AzureScope(settings.azure_org, settings.azure_project, settings.azure_repo or None)
        url = origin_url(cwd)
        scope = parse_azure_repo(url) if url else None
        if not scope:
            raise ScopeUnresolved("Could not resolve Azure scope. Set --repo or AZURE_ORG/AZURE_PROJECT.")
        return scope

    def detect_repo(self, cwd: Path) -> str:
        return self.resolve_scope(cwd).as_repo()

    def fetch_item(self, request: FetchRequest) -> RemoteItem:
        if request.kind == "task":
            raise ProviderRequestFailed("Azure has no task items; use --task with the local store.", provider="azure")
        scope = self.resolve_scope(request.cwd, request.repo)
        base = f"https://dev.azure.com/{quote(scope.organization)}/{quote(scope.project)}"
        headers = self._headers()
        params = {"api-version": API_VERSION}
        log.info("fetching item", provider="azure", kind=request.kind, number=request.number, scope=scope.as_repo())

        if request.kind == "issue":
            node = get_json("azure", f"{base}/_apis/wit/workitems/{request.number}", headers, params)
            fields = node.get("fields") or {}
            tags = fields.get("System.Tags") or ""
            assignee = _identity(fields.get("System.AssignedTo"))
            html_link = ((node.get("_links") or {}).get("html") or {}).get("href")
            return RemoteItem(
                provider="azure",
                kind="issue",
                key=str(node["id"]),
                repo=f"{scope.organization}/{scope.project}",
                number=node["id"],
                title=fields.get("System.Title") or "",
                body=strip_html(fields.get("System.Description") or ""),
                author=_identity(fields.get("System.CreatedBy")),
                state=fields.get("System.State") or "",
                url=html_link or f"{base}/_workitems/edit/{node['id']}",
                labels=[tag.strip() for tag in tags.split(";") if tag.strip()],
                assignees=[assignee] if assignee else [],
                updated_at=fields.get("System.ChangedDate") or _now(),
            )

        if not scope.repository:
            raise ScopeUnresolved("Azure PR lookup requires repository scope: --repo org/project/repo or AZURE_REPO.")
        repository = quote(scope.repository)
        node = get_json("azure", f"{base}/_apis/git/repositories/{repository}/pullRequests/{request.number}", headers, params)
        web_link = ((node.get("_links") or {}).get("web") or {}).get("href")
        reviewers = [_identity(reviewer) for reviewer in node.get("reviewers") or []]
        return RemoteItem(
            provider="azure",
            kind="pr",
            key=str(node["pullRequestId"]),
            repo=scope.as_repo(),
            number=node["pullRequestId"],
            title=node.get("title") or "",
            body=node.get("description") or "",
            author=_identity(node.get("createdBy")),
            state=node.get("status") or "",
            url=web_link or f"{base}/_git/{repository}/pullrequest/{node['pullRequestId']}",
            labels=[],
            assignees=[name for name in reviewers if name],
            updated_at=node.get("closedDate") or node.get("creationDate") or _now(),
            head_ref_name=_branch(node.get("sourceRefName")),
            base_ref_name=_branch(node.get("targetRefName")),
        )

    @staticmethod
    def item_ref(item: RemoteItem) -> str:
        if item.kind == "issue":
            return f"{item.repo}#{item.number}"
        return f"{item.repo}#PR{item.number}"
