"""Tests for opsctl.agents: agent CLI argv construction and launch."""

from unittest.mock import MagicMock, patch

from opsctl.agents import build_agent_command, run_agent
from opsctl.models import AgentRunInput


def _run(**kwargs) -> AgentRunInput:
    defaults = {"cli": "claude", "mode": "interactive", "prompt": "Do it", "cwd": "/repo"}
    defaults.update(kwargs)
    return AgentRunInput(**defaults)


class TestClaudeCommand:
    def test_interactive_prompt_last(self) -> None:
        command = build_agent_command(_run(model="opus", permission_mode="plan", allowed_tools=["Read", "Edit"]))
        assert command.command == "claude"
        assert command.args == ["--model", "opus", "--permission-mode", "plan", "--allowed-tools", "Read,Edit", "Do it"]
        assert command.stdin is None

    def test_non_interactive_print_mode(self) -> None:
        command = build_agent_command(_run(mode="non-interactive", model="opus"))
        assert command.args == ["-p", "Do it", "--model", "opus"]

    def test_ignores_codex_only_options(self) -> None:
        command = build_agent_command(_run(sandbox_mode="read-only", approval_policy="never"))
        assert command.args == ["Do it"]


class TestCodexCommand:
    def test_interactive(self) -> None:
        command = build_agent_command(
            _run(cli="codex", model="o3", sandbox_mode="workspace-write", approval_policy="on-request")
        )
        assert command.command == "codex"
        assert command.args == ["-m", "o3", "-s", "workspace-write", "-a", "on-request", "-C", "/repo", "Do it"]

    def test_permission_mode_is_approval_fallback(self) -> None:
        command = build_agent_command(_run(cli="codex", permission_mode="never"))
        assert command.args == ["-a", "never", "-C", "/repo", "Do it"]

    def test_non_interactive_reads_prompt_from_stdin(self) -> None:
        command = build_agent_command(
            _run(cli="codex", mode="non-interactive", sandbox_mode="read-only", approval_policy="never")
        )
        assert command.args == ["exec", "-s", "read-only", "-C", "/repo", "-"]
        assert command.stdin == "Do it"


class TestRunAgent:
    def test_non_interactive_captures_output(self) -> None:
        mock_result = MagicMock(returncode=0, stdout="answer\n", stderr="")
        with patch("subprocess.run", return_value=mock_result) as mock_run:
            result = run_agent(_run(mode="non-interactive"))
        assert result.exit_code == 0
        assert result.stdout == "answer\n"
        argv = mock_run.call_args.args[0]
        assert argv == ["claude", "-p", "Do it"]
        assert mock_run.call_args.kwargs["cwd"] == "/repo"

    def test_codex_exec_gets_prompt_on_stdin(self) -> None:
        mock_result = MagicMock(returncode=0, stdout="", stderr="")
        with patch("subprocess.run", return_value=mock_result) as mock_run:
            run_agent(_run(cli="codex", mode="non-interactive"))
        assert mock_run.call_args.kwargs["input"] == "Do it"

    def test_interactive_inherits_terminal(self) -> None:
        proc = MagicMock()
        proc.wait.return_value = 4
        with patch("subprocess.Popen", return_value=proc) as mock_popen:
            result = run_agent(_run())
        assert result.exit_code == 4
        assert result.stdout == ""
        assert mock_popen.call_args.args[0] == ["claude", "Do it"]
