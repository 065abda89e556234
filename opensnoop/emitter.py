from __future__ import annotations

import sys
from typing import TextIO

from opensnoop.correlator import LostEvents, OpenRecord

PROG = "opensnoop"


def format_header(show_time: bool = False) -> str:
    prefix = f"{'TIMEs':<16} " if show_time else ""
    return prefix + f"{'COMM':<16.16}{'PID':<6} {'FD':>4} FILE"


def format_record(record: OpenRecord, show_time: bool = False) -> str:
    prefix = f"{record.timestamp or '':<16} " if show_time else ""
    return prefix + f"{record.comm:<16.16}{record.pid:<6} {record.fd:>4} {record.path}"


class RecordEmitter:
    def __init__(self, out: TextIO | None = None, err: TextIO | None = None, show_time: bool = False) -> None:
        self.out = out if out is not None else sys.stdout
        self.err = err if err is not None else sys.stderr
        self.show_time = show_time
        self.records = 0
        self.warnings = 0

    def header(self) -> None:
        self.out.write(format_header(self.show_time) + "\n")
        self.out.flush()

    def record(self, record: OpenRecord) -> None:
        self.out.write(format_record(record, self.show_time) + "\n")
        self.out.flush()
        self.records += 1

    def warn(self, message: str) -> None:
        self.err.write(f"WARNING: {message}\n")
        self.err.flush()
        self.warnings += 1

    def status(self, message: str) -> None:
        self.err.write(message + "\n")
        self.err.flush()

    def error(self, message: str) -> None:
        self.err.write(f"{PROG}: {message}\n")
        self.err.flush()

    def emit(self, item: OpenRecord | LostEvents) -> None:
        if isinstance(item, LostEvents):
            self.warn(item.line)
            return
        self.record(item)
