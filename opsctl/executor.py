"""Prepare (look up, build context, render) and execute command templates."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog

from opsctl.agents import run_agent
from opsctl.context import build_context
from opsctl.errors import MissingVariables
from opsctl.models import (
    AGENT_CLIS,
    AgentRunInput,
    ExecutedRun,
    ExecutionProfile,
    ItemTarget,
    PreparedRun,
    ProcessResult,
    ProviderId,
)
from opsctl.ops_data import get_command_by_id
from opsctl.providers import ProviderAdapter
from opsctl.settings import OpsSettings
from opsctl.store import Collection
from opsctl.template import render_template

log = structlog.get_logger(__name__)

AgentRunner = Callable[[AgentRunInput], ProcessResult]

DEFAULT_CLI = AGENT_CLIS[0]
DEFAULT_MODE = "interactive"

PROFILE_FIELDS = ("cli", "mode", "model", "permission_mode", "allowed_tools", "sandbox_mode", "approval_policy")


def prepare_run(
    collection: Collection,
    repo_root: Path,
    settings: OpsSettings,
    command_id: str,
    *,
    target: ItemTarget | None = None,
    repo: str | None = None,
    provider: ProviderId | None = None,
    variables: dict[str, Any] | None = None,
    ensure_sidecar: bool = True,
    adapter: ProviderAdapter | None = None,
) -> PreparedRun:
    command = get_command_by_id(collection, command_id)
    built = build_context(
        collection,
        repo_root,
        settings,
        target=target,
        repo=repo,
        provider=provider,
        explicit_vars=variables,
        ensure_sidecar=ensure_sidecar,
        adapter=adapter,
    )
    rendered = render_template(command.body, built.context)
    log.debug("prepared run", command_id=command_id, missing=rendered.missing_required)
    return PreparedRun(
        command=command,
        context=built.context,
        rendered_prompt=rendered.text,
        missing_required=rendered.missing_required,
        placeholders_used=rendered.placeholders_used,
        target=target,
    )


def _frontmatter_profile(prepared: PreparedRun) -> ExecutionProfile:
    fm = prepared.command.frontmatter
    return ExecutionProfile(
        cli=fm.cli_type,
        mode=fm.default_mode,
        model=fm.model,
        permission_mode=fm.permission_mode,
        allowed_tools=fm.allowed_tools,
        sandbox_mode=fm.sandbox_mode,
        approval_policy=fm.approval_policy,
    )


def resolve_profile(*profiles: ExecutionProfile | None) -> dict[str, Any]:
    """First non-None value per field across profiles, highest precedence first."""
    resolved: dict[str, Any] = {}
    for field in PROFILE_FIELDS:
        resolved[field] = next(
            (getattr(p, field) for p in profiles if p is not None and getattr(p, field) is not None),
            None,
        )
    resolved["cli"] = resolved["cli"] or DEFAULT_CLI
    resolved["mode"] = resolved["mode"] or DEFAULT_MODE
    return resolved


def execute_prepared(
    prepared: PreparedRun,
    repo_root: Path,
    *,
    overrides: ExecutionProfile | None = None,
    defaults: ExecutionProfile | None = None,
    runner: AgentRunner = run_agent,
) -> ExecutedRun:
    if prepared.missing_required:
        raise MissingVariables(prepared.missing_required)

    params = resolve_profile(overrides, _frontmatter_profile(prepared), defaults)
    log.info("executing command", command_id=prepared.command.frontmatter.id, cli=params["cli"], mode=params["mode"])
    result = runner(AgentRunInput(prompt=prepared.rendered_prompt, cwd=str(Path(repo_root).resolve()), **params))
    return ExecutedRun(
        command_id=prepared.command.frontmatter.id,
        cli=params["cli"],
        mode=params["mode"],
        prompt=prepared.rendered_prompt,
        exit_code=result.exit_code,
        stdout=result.stdout,
        stderr=result.stderr,
    )


def execute_run(
    collection: Collection,
    repo_root: Path,
    settings: OpsSettings,
    command_id: str,
    *,
    target: ItemTarget | None = None,
    repo: str | None = None,
    provider: ProviderId | None = None,
    variables: dict[str, Any] | None = None,
    ensure_sidecar: bool = True,
    overrides: ExecutionProfile | None = None,
    runner: AgentRunner = run_agent,
    adapter: ProviderAdapter | None = None,
) -> ExecutedRun:
    prepared = prepare_run(
        collection,
        repo_root,
        settings,
        command_id,
        target=target,
        repo=repo,
        provider=provider,
        variables=variables,
        ensure_sidecar=ensure_sidecar,
        adapter=adapter,
    )
    return execute_prepared(
        prepared, repo_root, overrides=overrides, defaults=settings.run_defaults(), runner=runner
    )
