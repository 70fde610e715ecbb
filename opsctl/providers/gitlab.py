"""GitLab REST API v4 provider."""

from pathlib import Path
from urllib.parse import quote, urlparse

import structlog

from opsctl.errors import MissingCredential, ProviderRequestFailed, ScopeUnresolved
from opsctl.models import RemoteItem
from opsctl.providers.base import FetchRequest, ProviderAdapter
from opsctl.providers.git_remote import origin_url, parse_gitlab_repo
from opsctl.providers.http import base_url, get_json
from opsctl.settings import OpsSettings

log = structlog.get_logger(__name__)


class GitLabProvider(ProviderAdapter):
    id = "gitlab"

    def __init__(self, settings: OpsSettings) -> None:
        self._settings = settings
        self._base = base_url(settings.gitlab_base_url, "https://gitlab.com")

    def _headers(self) -> dict[str, str]:
        if not self._settings.gitlab_token:
            raise MissingCredential("GITLAB_TOKEN", provider="gitlab")
        return {"PRIVATE-TOKEN": self._settings.gitlab_token.get_secret_value()}

    def detect_repo(self, cwd: Path) -> str:
        if self._settings.gitlab_project:
            return self._settings.gitlab_project
        url = origin_url(cwd)
        host = urlparse(self._base).hostname or "gitlab.com"
        repo = parse_gitlab_repo(url, host) if url else None
        if not repo:
            raise ScopeUnresolved("Could not detect GitLab project from git remote. Set --repo or GITLAB_PROJECT.")
        return repo

    def fetch_item(self, request: FetchRequest) -> RemoteItem:
        if request.kind == "task":
            raise ProviderRequestFailed("GitLab has no task items; use --task with the local store.", provider="gitlab")
        repo = request.repo or self.detect_repo(request.cwd)
        resource = "issues" if request.kind == "issue" else "merge_requests"
        url = f"{self._base}/api/v4/projects/{quote(repo, safe='')}/{resource}/{request.number}"
        log.info("fetching item", provider="gitlab", kind=request.kind, number=request.number, repo=repo)
        node = get_json("gitlab", url, self._headers())
        return RemoteItem(
            provider="gitlab",
            kind=request.kind,
            key=str(node["iid"]),
            repo=repo,
            number=node["iid"],
            title=node["title"],
            body=node.get("description") or "",
            author=(node.get("author") or {}).get("username") or "",
            state=node.get("state") or "",
            url=node.get("web_url") or "",
            labels=[name for name in node.get("labels") or [] if name],
            assignees=[user["username"] for user in node.get("assignees") or [] if user.get("username")],
            updated_at=node.get("updated_at") or "",
            head_ref_name=node.get("source_branch"),
            base_ref_name=node.get("target_branch"),
        )

    @staticmethod
    def item_ref(item: RemoteItem) -> str:
        if item.kind == "issue":
            return f"{item.repo}#{item.number}"
        return f"{item.repo}!{item.number}"
