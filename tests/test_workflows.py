"""Tests for opsctl.workflows: triage-then-address."""

from pathlib import Path

import pytest

from opsctl.errors import NotFound
from opsctl.models import AgentRunInput, ExecutionProfile, ProcessResult, RemoteItem
from opsctl.ops_data import upsert_item
from opsctl.settings import OpsSettings
from opsctl.store import Collection
from opsctl.workflows import address_issue

ANALYSIS = {"summary": "Null session", "priority": "high", "difficulty": "easy", "risk": "low"}


class ScriptedRunner:
    """Returns queued exit codes; optionally writes triage results into the sidecar like an agent would."""

    def __init__(self, ops_dir: Path, exit_codes: list[int], triage_writes: dict | None = None) -> None:
        self.ops_dir = ops_dir
        self.exit_codes = list(exit_codes)
        self.triage_writes = triage_writes
        self.calls: list[AgentRunInput] = []

    def __call__(self, run: AgentRunInput) -> ProcessResult:
        self.calls.append(run)
        if self.triage_writes and len(self.calls) == 1:
            # the lock must be free while the agent runs
            assert not (self.ops_dir / ".lock").exists()
            Collection(self.ops_dir).update("items/issue-123.md", self.triage_writes)
        return ProcessResult(exit_code=self.exit_codes.pop(0), stdout="ok")


class TestAddressIssue:
    def test_runs_triage_when_analysis_missing(
        self, ops_dir: Path, repo_dir: Path, settings: OpsSettings, stub_adapter
    ) -> None:
        runner = ScriptedRunner(ops_dir, [0, 0], triage_writes=ANALYSIS)
        result = address_issue(ops_dir, repo_dir, settings, 123, runner=runner, adapter=stub_adapter)

        assert result.triage_ran is True
        assert result.triage is not None and result.triage.command_id == "triage-issue"
        assert result.triage.mode == "non-interactive"
        assert result.address is not None and result.address.command_id == "address-issue"
        assert result.exit_code == 0
        # the address prompt is rendered after triage and sees its output
        assert "Priority: high" in runner.calls[1].prompt
        assert "Null session" in runner.calls[1].prompt

    def test_skips_triage_when_analysis_present(
        self, ops_dir: Path, repo_dir: Path, settings: OpsSettings, stub_adapter, github_issue: RemoteItem
    ) -> None:
        collection = Collection(ops_dir)
        collection.update(upsert_item(collection, github_issue), ANALYSIS)
        runner = ScriptedRunner(ops_dir, [0])
        result = address_issue(ops_dir, repo_dir, settings, 123, runner=runner, adapter=stub_adapter)

        assert result.triage_ran is False
        assert result.triage is None
        assert len(runner.calls) == 1
        assert "Address issue acme/widgets#123." in runner.calls[0].prompt

    def test_force_triage(
        self, ops_dir: Path, repo_dir: Path, settings: OpsSettings, stub_adapter, github_issue: RemoteItem
    ) -> None:
        collection = Collection(ops_dir)
        collection.update(upsert_item(collection, github_issue), ANALYSIS)
        runner = ScriptedRunner(ops_dir, [0, 0])
        result = address_issue(
            ops_dir, repo_dir, settings, 123, force_triage=True, runner=runner, adapter=stub_adapter
        )
        assert result.triage_ran is True
        assert len(runner.calls) == 2

    def test_skip_triage(self, ops_dir: Path, repo_dir: Path, settings: OpsSettings, stub_adapter) -> None:
        runner = ScriptedRunner(ops_dir, [0])
        result = address_issue(ops_dir, repo_dir, settings, 123, skip_triage=True, runner=runner, adapter=stub_adapter)
        assert result.triage_ran is False
        assert len(runner.calls) == 1

    def test_failed_triage_stops(self, ops_dir: Path, repo_dir: Path, settings: OpsSettings, stub_adapter) -> None:
        runner = ScriptedRunner(ops_dir, [2])
        result = address_issue(ops_dir, repo_dir, settings, 123, runner=runner, adapter=stub_adapter)
        assert result.address is None
        assert result.exit_code == 2
        assert len(runner.calls) == 1

    def test_overrides_apply_to_address_only(
        self, ops_dir: Path, repo_dir: Path, settings: OpsSettings, stub_adapter
    ) -> None:
        runner = ScriptedRunner(ops_dir, [0, 0])
        address_issue(
            ops_dir,
            repo_dir,
            settings,
            123,
            overrides=ExecutionProfile(cli="codex", model="o3"),
            triage_mode="interactive",
            runner=runner,
            adapter=stub_adapter,
        )
        triage_call, address_call = runner.calls
        assert (triage_call.cli, triage_call.mode, triage_call.model) == ("claude", "interactive", None)
        assert (address_call.cli, address_call.model) == ("codex", "o3")

    def test_configured_command_ids(self, ops_dir: Path, repo_dir: Path, stub_adapter) -> None:
        settings = OpsSettings(_env_file=None, commands={"address_issue": "handoff"})  # type: ignore[call-arg]
        runner = ScriptedRunner(ops_dir, [0])
        result = address_issue(ops_dir, repo_dir, settings, 123, skip_triage=True, runner=runner, adapter=stub_adapter)
        assert result.address_command_id == "handoff"
        assert "Create a handoff for acme/widgets#123." in runner.calls[0].prompt

    def test_missing_store(self, repo_dir: Path, settings: OpsSettings) -> None:
        with pytest.raises(NotFound):
            address_issue(repo_dir / ".ops", repo_dir, settings, 123, runner=ScriptedRunner(repo_dir, []))
