"""Shared pydantic models: the contract between providers, the store, the executor and main.py."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, model_validator

ProviderId = Literal["github", "gitlab", "jira", "azure", "local"]
RemoteProviderId = Literal["github", "gitlab", "jira", "azure"]
ItemKind = Literal["issue", "pr", "task"]
AgentCli = Literal["claude", "codex"]  # first entry is the hardwired default
RunMode = Literal["interactive", "non-interactive"]
SandboxMode = Literal["read-only", "workspace-write", "danger-full-access"]
ApprovalPolicy = Literal["untrusted", "on-failure", "on-request", "never"]

PROVIDER_IDS: tuple[str, ...] = ("github", "gitlab", "jira", "azure", "local")
AGENT_CLIS: tuple[str, ...] = ("claude", "codex")


class RemoteItem(BaseModel):
    """Snapshot of an issue, PR or task as seen by its provider."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderId
    kind: ItemKind
    key: str  # str(number) for issue/pr, store path for tasks
    repo: str | None = None  # owner/repo, group/project, org/project[/repo], Jira project key
    source_path: str | None = None  # tasks only
    number: int | None = None
    title: str
    body: str = ""
    author: str = ""
    state: str = ""
    url: str = ""
    labels: list[str] = []
    assignees: list[str] = []
    updated_at: str
    head_ref_name: str | None = None  # PRs only
    base_ref_name: str | None = None

    @model_validator(mode="after")
    def _check_kind_shape(self) -> "RemoteItem":
        if self.kind == "task":
            if self.provider != "local" or self.number is not None:
                raise ValueError("task items must come from the local provider and carry no number")
        elif self.number is None or self.provider == "local":
            raise ValueError(f"{self.kind} items need a number and a remote provider")
        return self


class ItemTarget(BaseModel):
    """What the user pointed at on the command line (--issue/--pr/--task)."""

    model_config = ConfigDict(frozen=True)

    kind: ItemKind
    key: str
    number: int | None = None


class StoredRecord(BaseModel):
    """One markdown document in the .ops store: sidecar, command, task or handoff."""

    path: str  # relative to the store root
    frontmatter: dict[str, Any] = {}
    body: str = ""


class CommandFrontmatter(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    scope: Literal["issue", "pr", "task", "general"] = "general"
    description: str | None = None
    placeholders: list[str] = []
    cli_type: AgentCli | None = None
    active: bool = True
    default_mode: RunMode | None = None
    model: str | None = None
    permission_mode: str | None = None
    allowed_tools: list[str] | None = None
    sandbox_mode: SandboxMode | None = None
    approval_policy: ApprovalPolicy | None = None


class CommandRecord(BaseModel):
    path: str
    body: str
    frontmatter: CommandFrontmatter


class RenderResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    missing_required: list[str] = []
    placeholders_used: list[str] = []


class BuildContextResult(BaseModel):
    context: dict[str, Any]
    item: RemoteItem | None = None
    sidecar: StoredRecord | None = None


class ExecutionProfile(BaseModel):
    """Agent execution knobs; used for call-site overrides and config defaults alike."""

    cli: AgentCli | None = None
    mode: RunMode | None = None
    model: str | None = None
    permission_mode: str | None = None
    allowed_tools: list[str] | None = None
    sandbox_mode: SandboxMode | None = None
    approval_policy: ApprovalPolicy | None = None


class AgentRunInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    cli: AgentCli
    mode: RunMode
    prompt: str
    cwd: str
    model: str | None = None
    permission_mode: str | None = None
    allowed_tools: list[str] | None = None
    sandbox_mode: SandboxMode | None = None
    approval_policy: ApprovalPolicy | None = None


class ProcessResult(BaseModel):
    """Exit code and captured output of a child process (agent, gh, git)."""

    model_config = ConfigDict(frozen=True)

    exit_code: int
    stdout: str = ""
    stderr: str = ""


class PreparedRun(BaseModel):
    command: CommandRecord
    context: dict[str, Any]
    rendered_prompt: str
    missing_required: list[str] = []
    placeholders_used: list[str] = []
    target: ItemTarget | None = None


class ExecutedRun(BaseModel):
    command_id: str
    cli: AgentCli
    mode: RunMode
    prompt: str
    exit_code: int
    stdout: str = ""  # always empty for interactive runs
    stderr: str = ""
