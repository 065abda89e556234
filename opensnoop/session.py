from __future__ import annotations

import errno
import os
import signal

from opensnoop.errors import Interrupted, SessionError

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP, signal.SIGUSR1)


def read_lock_owner(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return handle.read().strip() or "unknown"
    except OSError:
        return "unknown"


class SessionGuard:
    """Permission check, ftrace lock file and stop-signal handling for one run."""

    def __init__(self, tracing_dir: str, lock_path: str) -> None:
        self.tracing_dir = tracing_dir
        self.lock_path = lock_path
        self.locked = False
        self.previous_handlers: dict[int, object] = {}

    def check_access(self) -> None:
        if not os.path.isdir(self.tracing_dir) or not os.access(self.tracing_dir, os.W_OK):
            raise SessionError(f"accessing tracing at {self.tracing_dir}. Root user? Kernel has FTRACE?")

    def acquire(self) -> None:
        try:
            fd = os.open(self.lock_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError as exc:
            owner = read_lock_owner(self.lock_path)
            raise SessionError(f"ftrace may be in use by PID {owner} {self.lock_path}") from exc
        except OSError as exc:
            raise SessionError(f"cannot create lock {self.lock_path}: {exc.strerror}") from exc
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(f"{os.getpid()}\n")
        self.locked = True

    def release(self) -> None:
        if not self.locked:
            return
        try:
            os.unlink(self.lock_path)
        except OSError as exc:
            if exc.errno != errno.ENOENT:
                raise SessionError(f"cannot remove lock {self.lock_path}: {exc.strerror}") from exc
        self.locked = False

    def _on_signal(self, signum, _frame) -> None:
        raise Interrupted(f"received signal {signal.Signals(signum).name}")

    def install_handlers(self) -> None:
        for signum in STOP_SIGNALS:
            self.previous_handlers[signum] = signal.signal(signum, self._on_signal)

    def ignore_signals(self) -> None:
        """Block stop signals, e.g. while probes are being torn down."""
        for signum in STOP_SIGNALS:
            previous = signal.signal(signum, signal.SIG_IGN)
            self.previous_handlers.setdefault(signum, previous)

    def restore_handlers(self) -> None:
        for signum, handler in self.previous_handlers.items():
            signal.signal(signum, handler)
        self.previous_handlers.clear()

    def __enter__(self) -> "SessionGuard":
        self.check_access()
        self.acquire()
        try:
            self.install_handlers()
        except BaseException:
            self.release()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore_handlers()
        self.release()
