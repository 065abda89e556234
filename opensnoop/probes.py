#!/usr/bin/env python3
"""
tracefs-backed probe lifecycle.

Every operation is a write of a control string into a tracefs pseudo-file;
failures surface as ProbeError naming the file so the caller can abort before
any stream is read.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterator

from opensnoop.errors import Interrupted, ProbeError
from opensnoop.runner import iter_complete_lines

KPROBE_GROUP = "kprobes"


@dataclass(frozen=True)
class ProbeSpec:
    name: str
    function: str
    fetcharg: str
    is_return: bool = True

    @property
    def event(self) -> str:
        return f"{KPROBE_GROUP}/{self.name}"

    def definition(self) -> str:
        kind = "r" if self.is_return else "p"
        return f"{kind}:{self.name} {self.function} arg1={self.fetcharg}"


def pid_filter(pid: int | None) -> str | None:
    if pid is None:
        return None
    return f"common_pid == {pid}"


class ProbeController:
    def __init__(self, tracing_dir: str) -> None:
        self.tracing_dir = tracing_dir
        self.installed: list[ProbeSpec] = []
        self.enabled: list[str] = []
        self.filtered: list[str] = []
        self.buffer_size_kb: str | None = None

    def _path(self, *parts: str) -> str:
        return os.path.join(self.tracing_dir, *parts)

    def _write(self, relpath: str, value: str, append: bool = False) -> None:
        path = self._path(relpath)
        try:
            with open(path, "a" if append else "w", encoding="utf-8") as handle:
                handle.write(value + "\n")
        except OSError as exc:
            raise ProbeError(f"writing {value!r} to {path}: {exc.strerror or exc}") from exc

    def _read(self, relpath: str) -> str:
        path = self._path(relpath)
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as handle:
                return handle.read()
        except OSError as exc:
            raise ProbeError(f"reading {path}: {exc.strerror or exc}") from exc

    def install(self, spec: ProbeSpec) -> None:
        self._write("kprobe_events", spec.definition(), append=True)
        self.installed.append(spec)

    def enable(self, event: str) -> None:
        self._write(os.path.join("events", event, "enable"), "1")
        self.enabled.append(event)

    def set_filter(self, event: str, expression: str) -> None:
        self._write(os.path.join("events", event, "filter"), expression)
        self.filtered.append(event)

    def disable(self, event: str) -> None:
        self._write(os.path.join("events", event, "enable"), "0")
        if event in self.enabled:
            self.enabled.remove(event)

    def clear_filter(self, event: str) -> None:
        self._write(os.path.join("events", event, "filter"), "0")
        if event in self.filtered:
            self.filtered.remove(event)

    def remove(self, spec: ProbeSpec) -> None:
        self._write("kprobe_events", f"-:{spec.name}", append=True)
        if spec in self.installed:
            self.installed.remove(spec)

    def set_buffer_size(self, size_kb: int) -> None:
        if self.buffer_size_kb is None:
            self.buffer_size_kb = self._read("buffer_size_kb").strip()
        self._write("buffer_size_kb", str(size_kb))

    def clear(self) -> None:
        self._write("trace", "")

    def header_lines(self) -> list[str]:
        lines = []
        for line in self._read("trace").splitlines(keepends=True):
            if not line.lstrip().startswith("#"):
                break
            lines.append(line)
        return lines

    def snapshot(self) -> list[str]:
        return self._read("trace").splitlines(keepends=True)

    def open_stream(self) -> Iterator[str]:
        path = self._path("trace_pipe")
        try:
            handle = open(path, "r", encoding="utf-8", errors="replace")
        except OSError as exc:
            raise ProbeError(f"reading {path}: {exc.strerror or exc}") from exc
        with handle:
            yield from iter_complete_lines(handle)

    def teardown(self) -> list[str]:
        """Undo everything this controller did; returns the errors it hit."""
        errors: list[str] = []
        steps = [(self.disable, event) for event in reversed(self.enabled)]
        steps += [(self.clear_filter, event) for event in reversed(self.filtered)]
        steps += [(self.remove, spec) for spec in reversed(self.installed)]
        for step, target in steps:
            try:
                step(target)
            except ProbeError as exc:
                errors.append(str(exc))
            except Interrupted:
                errors.append(f"interrupted during {step.__name__} of {target}")
        if self.buffer_size_kb is not None:
            try:
                self._write("buffer_size_kb", self.buffer_size_kb)
                self.buffer_size_kb = None
            except ProbeError as exc:
                errors.append(str(exc))
        try:
            self.clear()
        except ProbeError as exc:
            errors.append(str(exc))
        # forget failed steps too so a second teardown is a no-op
        self.enabled.clear()
        self.filtered.clear()
        self.installed.clear()
        self.buffer_size_kb = None
        return errors
