"""Shared test fixtures."""

from pathlib import Path

import pytest
import structlog

import opsctl.settings as settings_module
from opsctl.models import RemoteItem
from opsctl.providers.base import FetchRequest, ProviderAdapter
from opsctl.scaffold import scaffold_ops
from opsctl.settings import OpsSettings
from opsctl.store import Collection

_ENV_VARS = (
    "GITLAB_TOKEN",
    "GITLAB_BASE_URL",
    "GITLAB_PROJECT",
    "JIRA_BASE_URL",
    "JIRA_API_TOKEN",
    "JIRA_EMAIL",
    "JIRA_USER",
    "JIRA_PROJECT",
    "AZURE_DEVOPS_PAT",
    "AZURE_ORG",
    "AZURE_PROJECT",
    "AZURE_REPO",
    "OPS_DEFAULT_REPO",
    "OPS_DEFAULT_PROVIDER",
    "OPS_DEFAULT_CLI",
    "OPS_DEFAULT_MODE",
    "OPS_DEFAULT_MODEL",
    "OPS_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Keep developer credentials, the settings cache and CLI log config out of every test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    settings_module._load_toml.cache_clear()
    yield
    settings_module._load_toml.cache_clear()
    structlog.reset_defaults()


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    (tmp_path / ".git").mkdir()
    return tmp_path


@pytest.fixture
def ops_dir(repo_dir: Path) -> Path:
    root = repo_dir / ".ops"
    scaffold_ops(root)
    return root


@pytest.fixture
def collection(ops_dir: Path) -> Collection:
    return Collection(ops_dir)


@pytest.fixture
def settings() -> OpsSettings:
    return OpsSettings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def github_issue() -> RemoteItem:
    return RemoteItem(
        provider="github",
        kind="issue",
        key="123",
        repo="acme/widgets",
        number=123,
        title="Fix null check in auth middleware",
        body="The middleware throws when session is None.",
        author="octocat",
        state="OPEN",
        url="https://github.com/acme/widgets/issues/123",
        labels=["bug", "auth"],
        assignees=["jane", "joe"],
        updated_at="2024-05-01T10:00:00Z",
    )


@pytest.fixture
def github_pr() -> RemoteItem:
    return RemoteItem(
        provider="github",
        kind="pr",
        key="7",
        repo="acme/widgets",
        number=7,
        title="Add retry to uploader",
        body="Retries uploads three times.",
        author="jane",
        state="OPEN",
        url="https://github.com/acme/widgets/pull/7",
        updated_at="2024-05-02T09:00:00Z",
        head_ref_name="feature/retry",
        base_ref_name="main",
    )


class StubAdapter(ProviderAdapter):
    """Returns a canned item and records every request."""

    id = "github"

    def __init__(self, item: RemoteItem) -> None:
        self.item = item
        self.requests: list[FetchRequest] = []

    def detect_repo(self, cwd: Path) -> str:
        return self.item.repo or ""

    def fetch_item(self, request: FetchRequest) -> RemoteItem:
        self.requests.append(request)
        return self.item

    @staticmethod
    def item_ref(item: RemoteItem) -> str:
        return f"{item.repo}#{item.number}"


@pytest.fixture
def stub_adapter(github_issue: RemoteItem) -> StubAdapter:
    return StubAdapter(github_issue)


@pytest.fixture
def make_adapter():
    """Build a StubAdapter for any canned item."""
    return StubAdapter
