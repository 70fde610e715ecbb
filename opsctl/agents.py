"""Command lines for the supported agent CLIs and the run primitive."""

from typing import NamedTuple

import structlog

from opsctl.models import AgentRunInput, ProcessResult
from opsctl.process import run_captured, run_inheriting_terminal

log = structlog.get_logger(__name__)


class AgentCommand(NamedTuple):
    command: str
    args: list[str]
    stdin: str | None = None


def _claude_flags(run: AgentRunInput) -> list[str]:
    flags: list[str] = []
    if run.model:
        flags += ["--model", run.model]
    if run.permission_mode:
        flags += ["--permission-mode", run.permission_mode]
    if run.allowed_tools:
        flags += ["--allowed-tools", ",".join(run.allowed_tools)]
    return flags


def _codex_flags(run: AgentRunInput, *, interactive: bool) -> list[str]:
    flags: list[str] = []
    if run.model:
        flags += ["-m", run.model]
    if run.sandbox_mode:
        flags += ["-s", run.sandbox_mode]
    # codex exec never prompts for approval, so -a only applies interactively
    approval = run.approval_policy or run.permission_mode
    if interactive and approval:
        flags += ["-a", approval]
    flags += ["-C", run.cwd]
    return flags


def build_agent_command(run: AgentRunInput) -> AgentCommand:
    interactive = run.mode == "interactive"
    if run.cli == "claude":
        if interactive:
            return AgentCommand("claude", [*_claude_flags(run), run.prompt])
        return AgentCommand("claude", ["-p", run.prompt, *_claude_flags(run)])

    if interactive:
        return AgentCommand("codex", [*_codex_flags(run, interactive=True), run.prompt])
    # "-" makes codex exec read the prompt from stdin, keeping long prompts off argv
    return AgentCommand("codex", ["exec", *_codex_flags(run, interactive=False), "-"], stdin=run.prompt)


def run_agent(run: AgentRunInput) -> ProcessResult:
    """Launch the agent; interactive runs inherit the terminal and capture nothing."""
    command = build_agent_command(run)
    log.info("launching agent", cli=run.cli, mode=run.mode, cwd=run.cwd)
    if run.mode == "interactive":
        return ProcessResult(exit_code=run_inheriting_terminal(command.command, command.args, run.cwd))
    return run_captured(command.command, command.args, run.cwd, stdin=command.stdin)
