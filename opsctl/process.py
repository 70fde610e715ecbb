"""Child process primitives: captured runs and runs that inherit the terminal."""

import signal
import subprocess
import threading
from collections.abc import Sequence
from pathlib import Path
from types import FrameType

import structlog

from opsctl.errors import OpsError
from opsctl.models import ProcessResult

log = structlog.get_logger(__name__)

_FORWARD_TIMEOUT = 10


def run_captured(command: str, args: Sequence[str], cwd: Path | str, stdin: str | None = None) -> ProcessResult:
    """Run to completion with stdout/stderr captured; stdin is the given text or /dev/null."""
    stdin_kwargs: dict = {"input": stdin} if stdin is not None else {"stdin": subprocess.DEVNULL}
    try:
        result = subprocess.run(
            [command, *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            **stdin_kwargs,
        )
    except FileNotFoundError as exc:
        raise OpsError(f"{command} not found on PATH", code="binary_missing") from exc
    return ProcessResult(exit_code=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")


def _stop_child(proc: subprocess.Popen, command: str, signum: int) -> None:
    if proc.poll() is not None:
        return
    log.debug("forwarding signal to child", command=command, signal=int(signum), pid=proc.pid)
    proc.send_signal(signum)
    try:
        proc.wait(timeout=_FORWARD_TIMEOUT)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


def _raise_exit(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(128 + signum)


def run_inheriting_terminal(command: str, args: Sequence[str], cwd: Path | str) -> int:
    """Run attached to the current terminal and return the exit code.

    SIGINT or SIGTERM delivered to us while waiting is forwarded to the child
    before it propagates, so the agent can clean up instead of being orphaned.
    The SIGTERM handler is only installed for the duration of the wait.
    """
    try:
        proc = subprocess.Popen([command, *args], cwd=cwd)
    except FileNotFoundError as exc:
        raise OpsError(f"{command} not found on PATH", code="binary_missing") from exc

    installed = False
    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.getsignal(signal.SIGTERM)
        if previous != signal.SIG_IGN:
            signal.signal(signal.SIGTERM, _raise_exit)
            installed = True

    try:
        return proc.wait()
    except (KeyboardInterrupt, SystemExit) as exc:
        _stop_child(proc, command, signal.SIGINT if isinstance(exc, KeyboardInterrupt) else signal.SIGTERM)
        raise
    finally:
        if installed:
            signal.signal(signal.SIGTERM, previous if previous is not None else signal.SIG_DFL)
