from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterable

from opensnoop import trace_lines
from opensnoop.filters import FilterEngine, FilterSpec


@dataclass(frozen=True)
class OpenRecord:
    comm: str
    pid: int
    fd: int
    path: str
    timestamp: str | None = None


@dataclass(frozen=True)
class LostEvents:
    line: str


class PendingPaths:
    """Resolved paths waiting for the sys_open exit of the same pid.

    With `queued` unset a newer path for a pid replaces the unconsumed one.
    With `queued` set each pid keeps a FIFO and an exit consumes the oldest.
    Entries are never expired.
    """

    def __init__(self, queued: bool = False) -> None:
        self.queued = queued
        self.by_pid: dict[int, deque[str]] = {}

    def add(self, pid: int, path: str) -> None:
        if not self.queued:
            self.by_pid[pid] = deque([path])
            return
        self.by_pid.setdefault(pid, deque()).append(path)

    def pop(self, pid: int) -> str:
        queue = self.by_pid.get(pid)
        if not queue:
            return ""
        path = queue.popleft()
        if not queue:
            self.by_pid.pop(pid, None)
        return path

    def __len__(self) -> int:
        return sum(len(queue) for queue in self.by_pid.values())

    def __contains__(self, pid: int) -> bool:
        return pid in self.by_pid


class Correlator:
    def __init__(
        self,
        filters: FilterEngine | None = None,
        offset: int = 0,
        show_time: bool = False,
        queue_per_pid: bool = False,
        path_functions: Iterable[str] = trace_lines.DEFAULT_PATH_FUNCTIONS,
        exit_syscalls: Iterable[str] = trace_lines.DEFAULT_EXIT_SYSCALLS,
    ) -> None:
        self.filters = filters or FilterSpec().compile()
        self.offset = offset
        self.show_time = show_time
        self.pending = PendingPaths(queued=queue_per_pid)
        self.path_functions = tuple(path_functions)
        self.exit_syscalls = tuple(exit_syscalls)

    def classify(self, raw: str) -> trace_lines.TraceLine:
        return trace_lines.classify_line(raw, self.offset, self.path_functions, self.exit_syscalls)

    def process(self, raw: str) -> OpenRecord | LostEvents | None:
        line = self.classify(raw)
        if line.kind == trace_lines.LOST:
            return LostEvents(line.raw)
        if line.kind not in (trace_lines.RESOLVE, trace_lines.EXIT):
            return None
        # name filtering happens per line so unmatched tasks never touch pending state
        if not self.filters.name_matches(line.comm or ""):
            return None

        if line.kind == trace_lines.RESOLVE:
            self.pending.add(line.pid, line.path)
            return None

        fd = trace_lines.decode_fd(line.ret or "")
        if fd is None:
            return None
        path = self.pending.pop(line.pid)
        if not self.filters.accepts(path, fd):
            return None
        return OpenRecord(
            comm=line.comm or "",
            pid=line.pid,
            fd=fd,
            path=path,
            timestamp=line.timestamp if self.show_time else None,
        )

    def process_all(self, lines: Iterable[str]):
        for raw in lines:
            result = self.process(raw)
            if result is not None:
                yield result
