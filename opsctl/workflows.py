"""Composed workflows built from two executor runs."""

from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel

from opsctl.agents import run_agent
from opsctl.executor import AgentRunner, execute_prepared, prepare_run
from opsctl.models import ExecutedRun, ExecutionProfile, ItemTarget, ProviderId, RunMode
from opsctl.ops_data import needs_analysis, read_item, upsert_item
from opsctl.providers import FetchRequest, ProviderAdapter, resolve_adapter
from opsctl.settings import OpsSettings
from opsctl.store import open_collection

log = structlog.get_logger(__name__)


class AddressIssueResult(BaseModel):
    issue: int
    triage_ran: bool
    triage_command_id: str
    address_command_id: str
    triage: ExecutedRun | None = None
    address: ExecutedRun | None = None  # None when triage failed

    @property
    def exit_code(self) -> int:
        if self.address is not None:
            return self.address.exit_code
        return self.triage.exit_code if self.triage is not None else 0


def address_issue(
    store_root: Path,
    repo_root: Path,
    settings: OpsSettings,
    number: int,
    *,
    repo: str | None = None,
    provider: ProviderId | None = None,
    triage_command_id: str | None = None,
    address_command_id: str | None = None,
    skip_triage: bool = False,
    force_triage: bool = False,
    triage_mode: RunMode = "non-interactive",
    variables: dict[str, Any] | None = None,
    overrides: ExecutionProfile | None = None,
    runner: AgentRunner = run_agent,
    adapter: ProviderAdapter | None = None,
) -> AddressIssueResult:
    """Run triage when the sidecar lacks analysis (or when forced), then address the issue.

    Each step renders inside its own store session and the agent runs after the
    lock is released, so the agent can update the sidecar with ``ops item set``
    and the address prompt sees what triage wrote. A failed triage stops the
    workflow; its exit code becomes the result's.
    """
    target = ItemTarget(kind="issue", key=str(number), number=number)
    triage_id = triage_command_id or settings.commands.triage_issue
    address_id = address_command_id or settings.commands.address_issue
    repo = repo or settings.default_repo
    defaults = settings.run_defaults()

    with open_collection(store_root) as collection:
        adapter = adapter or resolve_adapter("issue", provider, settings, collection)
        item = adapter.fetch_item(FetchRequest(kind="issue", key=target.key, number=number, cwd=repo_root, repo=repo))
        upsert_item(collection, item)
        run_triage = force_triage or (not skip_triage and needs_analysis(read_item(collection, target)))

    result = AddressIssueResult(
        issue=number, triage_ran=run_triage, triage_command_id=triage_id, address_command_id=address_id
    )

    def _prepare(command_id: str, step_vars: dict[str, Any] | None):
        with open_collection(store_root) as collection:
            return prepare_run(
                collection,
                repo_root,
                settings,
                command_id,
                target=target,
                repo=repo,
                variables=step_vars,
                ensure_sidecar=True,
                adapter=adapter,
            )

    if run_triage:
        log.info("running triage before address", issue=number, command_id=triage_id)
        triage_overrides = ExecutionProfile(mode=triage_mode)
        result.triage = execute_prepared(
            _prepare(triage_id, None), repo_root, overrides=triage_overrides, defaults=defaults, runner=runner
        )
        if result.triage.exit_code != 0:
            log.warning("triage failed, not addressing", issue=number, exit_code=result.triage.exit_code)
            return result

    result.address = execute_prepared(
        _prepare(address_id, variables), repo_root, overrides=overrides, defaults=defaults, runner=runner
    )
    return result
