"""PID-stamped advisory lock guarding a whole .ops store session.

Only one process may hold the lock for a store root. A lock whose recorded
process is gone is treated as stale, removed, and the create is retried once.
"""

import os
import signal
import threading
from collections.abc import Callable
from pathlib import Path
from types import FrameType
from typing import Any

import structlog

from opsctl.errors import LockAcquisitionFailed, LockHeld
from opsctl.paths import LOCK_FILENAME

log = structlog.get_logger(__name__)

_RELEASE_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def is_process_alive(pid: int) -> bool:
    """Probe pid with signal 0; EPERM still means the process exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


class StoreLock:
    """Exclusive marker file at ``<root>/.lock`` containing the holder's pid.

    Use as a context manager; SIGINT/SIGTERM handlers that release the lock are
    installed only while it is held.
    """

    def __init__(
        self,
        root: Path,
        *,
        pid: int | None = None,
        is_alive: Callable[[int], bool] = is_process_alive,
    ) -> None:
        self.path = Path(root) / LOCK_FILENAME
        self.pid = pid if pid is not None else os.getpid()
        self._is_alive = is_alive
        self._held = False
        self._previous_handlers: dict[int, Any] = {}

    @property
    def held(self) -> bool:
        return self._held

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as handle:
            handle.write(f"{self.pid}\n")
        return True

    def _read_holder(self) -> int | None:
        try:
            text = self.path.read_text().strip()
        except FileNotFoundError:
            return None
        try:
            return int(text)
        except ValueError:
            return None

    def acquire(self) -> None:
        if self._try_create():
            self._held = True
            log.debug("store lock acquired", path=str(self.path), pid=self.pid)
            return

        holder = self._read_holder()
        if holder is not None and self._is_alive(holder):
            raise LockHeld(holder, path=str(self.path))

        log.warning("removing stale store lock", path=str(self.path), pid=holder)
        self.path.unlink(missing_ok=True)
        if not self._try_create():
            raise LockAcquisitionFailed(str(self.path))
        self._held = True
        log.debug("store lock acquired after stale cleanup", path=str(self.path), pid=self.pid)

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        self.path.unlink(missing_ok=True)
        log.debug("store lock released", path=str(self.path), pid=self.pid)

    # -- signal handling ----------------------------------------------------

    def _install_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in _RELEASE_SIGNALS:
            previous = signal.getsignal(signum)
            if previous == signal.SIG_IGN:
                continue
            self._previous_handlers[signum] = previous
            signal.signal(signum, self._on_signal)

    def _restore_handlers(self) -> None:
        while self._previous_handlers:
            signum, previous = self._previous_handlers.popitem()
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)

    def _on_signal(self, signum: int, frame: FrameType | None) -> None:
        previous = self._previous_handlers.get(signum)
        self.release()
        self._restore_handlers()
        if callable(previous):
            previous(signum, frame)
        raise SystemExit(128 + signum)

    def __enter__(self) -> "StoreLock":
        self.acquire()
        try:
            self._install_handlers()
        except BaseException:
            self.release()
            raise
        return self

    def __exit__(self, *exc_info: object) -> None:
        try:
            self.release()
        finally:
            self._restore_handlers()
