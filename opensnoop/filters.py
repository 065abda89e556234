from __future__ import annotations

import re
from dataclasses import dataclass

from opensnoop.errors import ConfigError


def compile_pattern(label: str, pattern: str | None) -> re.Pattern[str] | None:
    if pattern is None:
        return None
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigError(f"invalid {label} pattern {pattern!r}: {exc}") from exc


@dataclass(frozen=True)
class FilterSpec:
    name: str | None = None
    pid: int | None = None
    tid: int | None = None
    file: str | None = None
    failure_only: bool = False

    def validate(self) -> None:
        selected = [flag for flag, value in (("-p", self.pid), ("-L", self.tid), ("-n", self.name)) if value is not None]
        if len(selected) > 1:
            raise ConfigError(f"{' and '.join(selected)} are mutually exclusive")

    def compile(self) -> "FilterEngine":
        self.validate()
        return FilterEngine(
            spec=self,
            name_re=compile_pattern("process name", self.name),
            file_re=compile_pattern("filename", self.file),
        )


@dataclass(frozen=True)
class FilterEngine:
    spec: FilterSpec
    name_re: re.Pattern[str] | None = None
    file_re: re.Pattern[str] | None = None

    def name_matches(self, comm: str) -> bool:
        if self.name_re is None:
            return True
        return self.name_re.search(comm) is not None

    def accepts(self, path: str, fd: int) -> bool:
        # pid/tid are narrowed by the kernel-side event filter, not here
        if self.file_re is not None and self.file_re.search(path) is None:
            return False
        if self.spec.failure_only and fd != -1:
            return False
        return True
