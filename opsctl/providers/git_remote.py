"""Scope detection from the git origin remote."""

import re
from pathlib import Path
from typing import NamedTuple

from opsctl.process import run_captured

_AZURE_HTTPS_RE = re.compile(r"dev\.azure\.com/([^/]+)/([^/]+)/_git/([^/]+)$", re.IGNORECASE)
_AZURE_SSH_RE = re.compile(r"ssh\.dev\.azure\.com[:/]v3/([^/]+)/([^/]+)/([^/]+)$", re.IGNORECASE)


class AzureScope(NamedTuple):
    organization: str
    project: str
    repository: str | None = None

    def as_repo(self) -> str:
        parts = [self.organization, self.project] + ([self.repository] if self.repository else [])
        return "/".join(parts)


def origin_url(cwd: Path) -> str | None:
    """Return remote.origin.url, or None when there is no usable origin."""
    result = run_captured("git", ["config", "--get", "remote.origin.url"], cwd)
    url = result.stdout.strip()
    if result.exit_code != 0 or not url:
        return None
    return url


def _clean(url: str) -> str:
    return url.strip().removesuffix("/").removesuffix(".git")


def _host_path(url: str, host: str) -> str | None:
    match = re.search(rf"{re.escape(host)}[/:](.+)$", _clean(url), re.IGNORECASE)
    return match.group(1) if match else None


def parse_github_repo(url: str) -> str | None:
    """git@github.com:owner/repo.git / https://github.com/owner/repo → owner/repo."""
    return _host_path(url, "github.com")


def parse_gitlab_repo(url: str, host: str = "gitlab.com") -> str | None:
    return _host_path(url, host)


def parse_azure_repo(url: str) -> AzureScope | None:
    cleaned = _clean(url)
    # https://dev.azure.com/org/project/_git/repo or git@ssh.dev.azure.com:v3/org/project/repo
    match = _AZURE_HTTPS_RE.search(cleaned) or _AZURE_SSH_RE.search(cleaned)
    if not match:
        return None
    return AzureScope(match.group(1), match.group(2), match.group(3))
