"""Settings resolution: provider credentials from the environment, repo defaults from .ops/config.toml.

Precedence (highest to lowest):
1. Environment variables (credentials by their conventional names, defaults as OPS_*)
2. .env in cwd
3. .ops/config.toml in the repository
4. Built-in defaults
"""

from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

import tomlkit
from pydantic import AliasChoices, BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict
from tomlkit.exceptions import TOMLKitError

from opsctl.errors import ConfigError
from opsctl.models import AgentCli, ApprovalPolicy, ExecutionProfile, RemoteProviderId, RunMode, SandboxMode

CONFIG_FILENAME = "config.toml"


class CommandIds(BaseModel):
    """Command template ids used by the high-level workflows."""

    triage_issue: str = "triage-issue"
    address_issue: str = "address-issue"
    review_pr: str = "review-pr"
    triage_task: str = "triage-task"


class OpsSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="OPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Repo defaults
    default_repo: str | None = None
    default_provider: RemoteProviderId = "github"
    default_cli: AgentCli | None = None
    default_mode: RunMode | None = None
    default_model: str | None = None
    default_permission_mode: str | None = None
    default_allowed_tools: list[str] | None = None
    default_sandbox_mode: SandboxMode | None = None
    default_approval_policy: ApprovalPolicy | None = None
    commands: CommandIds = CommandIds()
    log_level: str = "WARNING"

    # GitLab
    gitlab_token: SecretStr | None = Field(default=None, validation_alias=AliasChoices("gitlab_token", "GITLAB_TOKEN"))
    gitlab_base_url: str = Field(
        default="https://gitlab.com", validation_alias=AliasChoices("gitlab_base_url", "GITLAB_BASE_URL")
    )
    gitlab_project: str | None = Field(default=None, validation_alias=AliasChoices("gitlab_project", "GITLAB_PROJECT"))

    # Jira
    jira_base_url: str | None = Field(default=None, validation_alias=AliasChoices("jira_base_url", "JIRA_BASE_URL"))
    jira_api_token: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("jira_api_token", "JIRA_API_TOKEN")
    )
    jira_email: str | None = Field(
        default=None, validation_alias=AliasChoices("jira_email", "JIRA_EMAIL", "JIRA_USER")
    )
    jira_project: str | None = Field(default=None, validation_alias=AliasChoices("jira_project", "JIRA_PROJECT"))

    # Azure DevOps
    azure_devops_pat: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("azure_devops_pat", "AZURE_DEVOPS_PAT")
    )
    azure_org: str | None = Field(default=None, validation_alias=AliasChoices("azure_org", "AZURE_ORG"))
    azure_project: str | None = Field(default=None, validation_alias=AliasChoices("azure_project", "AZURE_PROJECT"))
    azure_repo: str | None = Field(default=None, validation_alias=AliasChoices("azure_repo", "AZURE_REPO"))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # config.toml values arrive as init kwargs; the environment must win over them
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    def run_defaults(self) -> ExecutionProfile:
        return ExecutionProfile(
            cli=self.default_cli,
            mode=self.default_mode,
            model=self.default_model,
            permission_mode=self.default_permission_mode,
            allowed_tools=self.default_allowed_tools,
            sandbox_mode=self.default_sandbox_mode,
            approval_policy=self.default_approval_policy,
        )


def config_path(repo_root: Path) -> Path:
    return repo_root / ".ops" / CONFIG_FILENAME


@lru_cache(maxsize=8)
def _load_toml(path: Path) -> dict[str, Any]:
    """Load .ops/config.toml as plain python values, returning {} if missing."""
    if not path.exists():
        return {}
    try:
        with path.open() as handle:
            doc = tomlkit.load(handle)
    except TOMLKitError as exc:
        raise ConfigError(f"Invalid {path}: {exc}") from exc
    return doc.unwrap()


def get_settings(repo_root: Path | None = None) -> OpsSettings:
    """Return OpsSettings for a repository, layering .ops/config.toml under the environment."""
    file_values: Mapping[str, Any] = _load_toml(config_path(repo_root)) if repo_root else {}
    try:
        return OpsSettings(**file_values)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "(root)"
        raise ConfigError(f"Invalid .ops/{CONFIG_FILENAME} field '{field}': {first['msg']}") from exc
