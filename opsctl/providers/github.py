"""GitHub provider backed by the authenticated gh CLI."""

import json
from pathlib import Path
from typing import Any

import structlog

from opsctl.errors import ProviderRequestFailed, ScopeUnresolved
from opsctl.models import RemoteItem
from opsctl.process import run_captured
from opsctl.providers.base import FetchRequest, ProviderAdapter
from opsctl.providers.git_remote import origin_url, parse_github_repo

log = structlog.get_logger(__name__)

ISSUE_FIELDS = "number,title,body,state,url,author,labels,assignees,updatedAt"
PR_FIELDS = f"{ISSUE_FIELDS},headRefName,baseRefName"


class GitHubProvider(ProviderAdapter):
    id = "github"

    def _gh(self, args: list[str], cwd: Path) -> str:
        result = run_captured("gh", args, cwd)
        if result.exit_code != 0:
            detail = (result.stderr or result.stdout).strip()
            raise ProviderRequestFailed(f"gh {' '.join(args[:2])} failed: {detail}", provider="github")
        return result.stdout

    def detect_repo(self, cwd: Path) -> str:
        result = run_captured("gh", ["repo", "view", "--json", "nameWithOwner", "-q", ".nameWithOwner"], cwd)
        if result.exit_code == 0 and result.stdout.strip():
            return result.stdout.strip()
        log.debug("gh repo view failed, falling back to origin remote", stderr=result.stderr.strip())
        url = origin_url(cwd)
        repo = parse_github_repo(url) if url else None
        if not repo:
            raise ScopeUnresolved("Could not detect GitHub repository. Pass --repo owner/name.")
        return repo

    def fetch_item(self, request: FetchRequest) -> RemoteItem:
        repo = request.repo or self.detect_repo(request.cwd)
        if request.kind == "task":
            raise ProviderRequestFailed("GitHub has no task items; use --task with the local store.", provider="github")
        subcommand = "issue" if request.kind == "issue" else "pr"
        fields = ISSUE_FIELDS if request.kind == "issue" else PR_FIELDS
        log.info("fetching item", provider="github", kind=request.kind, number=request.number, repo=repo)
        stdout = self._gh([subcommand, "view", str(request.number), "--repo", repo, "--json", fields], request.cwd)
        try:
            node: dict[str, Any] = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise ProviderRequestFailed(f"gh {subcommand} view returned invalid JSON", provider="github") from exc
        return RemoteItem(
            provider="github",
            kind=request.kind,
            key=str(node["number"]),
            repo=repo,
            number=node["number"],
            title=node["title"],
            body=node.get("body") or "",
            author=(node.get("author") or {}).get("login") or "",
            state=node.get("state") or "",
            url=node.get("url") or "",
            labels=[label["name"] for label in node.get("labels") or [] if label.get("name")],
            assignees=[user["login"] for user in node.get("assignees") or [] if user.get("login")],
            updated_at=node.get("updatedAt") or "",
            head_ref_name=node.get("headRefName"),
            base_ref_name=node.get("baseRefName"),
        )

    @staticmethod
    def item_ref(item: RemoteItem) -> str:
        if item.kind == "issue":
            return f"{item.repo}#{item.number}"
        return f"{item.repo}#PR{item.number}"
