"""
Shared pytest fixtures.

`tracefs` lays out a writable stand-in for the tracing directory and points
the CLI at it (and at a private lock file) through the environment, so the
probe lifecycle can be exercised without root or a kernel.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from tests.support.synthetic_trace import build_tracefs


ROOT_DIR = Path(__file__).resolve().parents[1]
TRACE_EVENTS = ["kprobes/getnameprobe", "syscalls/sys_exit_open"]


@pytest.fixture
def tracefs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "tracing"
    build_tracefs(root, TRACE_EVENTS)
    monkeypatch.setenv("OPENSNOOP_TRACING_DIR", str(root))
    monkeypatch.setenv("OPENSNOOP_LOCK_PATH", str(tmp_path / "ftrace-lock"))
    monkeypatch.delenv("OPENSNOOP_CONFIG", raising=False)
    return root
