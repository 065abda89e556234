#!/usr/bin/env python3
"""
Classification of raw ftrace text lines.

ftrace prints one event per line as whitespace separated fields:

    cat-1234  [001] 1234.567890: getnameprobe: (do_sys_open+0xc3/0x220 <- getname) arg1="/etc/passwd"
    cat-1234  [001] 1234.567895: sys_open -> 0x3

Kernels with the irq-info trace option add a flags column after the CPU
(`d...`), which shifts every later field right by one. The `# TASK-PID ...`
header tells the two layouts apart, so the shift is detected once per run and
passed to `classify_line` as `offset`.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

HEADER_FIELDS_LONG = 6
LOST_RE = re.compile(r"LOST.*EVENTS")
PATH_ARG_RE = re.compile(r'\barg1="(.*)"')
FAILURE_RE = re.compile(r"^0xffff", re.IGNORECASE)

DEFAULT_PATH_FUNCTIONS = ("do_sys_open", "getname")
DEFAULT_EXIT_SYSCALLS = ("sys_open",)

HEADER = "header"
COMMENT = "comment"
LOST = "lost"
RESOLVE = "resolve"
EXIT = "exit"
OTHER = "other"


@dataclass(frozen=True)
class TraceLine:
    kind: str
    raw: str
    fields: tuple[str, ...]
    comm: str | None = None
    pid: int | None = None
    path: str | None = None
    ret: str | None = None
    timestamp: str | None = None


def is_comment(line: str) -> bool:
    return line.lstrip().startswith("#")


def is_header(fields: Iterable[str]) -> bool:
    return any(field.startswith("TASK") for field in fields)


def detect_offset(lines: Iterable[str]) -> int:
    """Return 1 for the irq-info header layout, 0 otherwise.

    Only the leading comment block is examined; the first event line ends the
    scan. A stream with no header at all keeps the default of 0.
    """
    for line in lines:
        if not line.strip():
            continue
        if not is_comment(line):
            break
        fields = line.split()
        if not is_header(fields):
            continue
        if len(fields) == HEADER_FIELDS_LONG:
            return 1
        return 0
    return 0


def split_task(field: str) -> tuple[str, int] | tuple[None, None]:
    # task names may contain dashes; the pid follows the last one
    comm, sep, pid = field.rpartition("-")
    if not sep or not pid.isdigit():
        return None, None
    return comm, int(pid)


def extract_path(line: str) -> str | None:
    match = PATH_ARG_RE.search(line)
    if not match:
        return None
    return match.group(1)


def decode_fd(token: str) -> int | None:
    if FAILURE_RE.match(token):
        return -1
    base = 16 if token.lower().startswith("0x") else 10
    try:
        return int(token, base)
    except ValueError:
        return None


def field_at(fields: tuple[str, ...], index: int) -> str:
    if index < len(fields):
        return fields[index]
    return ""


def classify_line(
    raw: str,
    offset: int = 0,
    path_functions: Iterable[str] = DEFAULT_PATH_FUNCTIONS,
    exit_syscalls: Iterable[str] = DEFAULT_EXIT_SYSCALLS,
) -> TraceLine:
    line = raw.rstrip("\r\n")
    fields = tuple(line.split())
    if not fields:
        return TraceLine(OTHER, line, fields)

    comm, pid = split_task(fields[0]) if not is_comment(line) else (None, None)
    if pid is None:
        # the lost marker is only looked for outside event lines
        if LOST_RE.search(line):
            return TraceLine(LOST, line, fields)
        if is_comment(line):
            kind = HEADER if is_header(fields) else COMMENT
            return TraceLine(kind, line, fields)
        return TraceLine(OTHER, line, fields)

    # the probe name or its location may carry the function, depending on the tracer
    probe_fields = field_at(fields, 3 + offset) + " " + field_at(fields, 4 + offset)
    if any(name in probe_fields for name in path_functions):
        path = extract_path(line)
        if path is not None:
            return TraceLine(RESOLVE, line, fields, comm=comm, pid=pid, path=path)

    call_field = field_at(fields, 3 + offset)
    if call_field and any(name in call_field for name in exit_syscalls):
        timestamp = field_at(fields, 2 + offset).rstrip(":")
        return TraceLine(
            EXIT,
            line,
            fields,
            comm=comm,
            pid=pid,
            ret=fields[-1],
            timestamp=timestamp,
        )
    return TraceLine(OTHER, line, fields, comm=comm, pid=pid)
