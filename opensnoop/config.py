from __future__ import annotations

import argparse
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from opensnoop.errors import ConfigError
from opensnoop.filters import FilterSpec

DEFAULT_CONFIG = Path(__file__).resolve().parent / "config" / "opensnoop.yaml"


def load_config(path: str | Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            content = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigError(f"cannot read config {path}: {exc.strerror}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid config {path}: {exc}") from exc
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigError(f"invalid config {path}: expected a mapping")
    return content


def resolve_config_path(cli_value: str | None) -> Path:
    return Path(cli_value or os.getenv("OPENSNOOP_CONFIG") or DEFAULT_CONFIG)


@dataclass(frozen=True)
class Options:
    filters: FilterSpec = field(default_factory=FilterSpec)
    duration: float | None = None
    show_time: bool = False
    queue_per_pid: bool = False
    input_path: str | None = None
    tracing_dir: str = "/sys/kernel/debug/tracing"
    buffer_size_kb: int = 4096
    probe_name: str = "getnameprobe"
    probe_function: str = "getname"
    probe_fetcharg: str = "+0(+0($retval)):string"
    syscall_event: str = "syscalls/sys_exit_open"
    path_functions: tuple[str, ...] = ("do_sys_open", "getname")
    exit_syscalls: tuple[str, ...] = ("sys_open",)
    lock_path: str = "/var/tmp/.ftrace-lock"

    @property
    def mode(self) -> str:
        if self.duration is not None or self.input_path is not None:
            return "buffered"
        return "live"

    def validate(self) -> None:
        self.filters.validate()
        if self.duration is not None and self.duration <= 0:
            raise ConfigError(f"duration must be positive, got {self.duration}")
        if self.buffer_size_kb <= 0:
            raise ConfigError(f"tracing.buffer_size_kb must be positive, got {self.buffer_size_kb}")
        if not self.path_functions or not self.exit_syscalls:
            raise ConfigError("trace.path_functions and trace.exit_syscalls must not be empty")


def _str_list(value, key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ConfigError(f"{key} must be a list of strings")
    return tuple(str(item) for item in value)


def build_options(args: argparse.Namespace, cfg: dict) -> Options:
    tracing_cfg = cfg.get("tracing", {}) or {}
    probe_cfg = cfg.get("probe", {}) or {}
    trace_cfg = cfg.get("trace", {}) or {}
    session_cfg = cfg.get("session", {}) or {}
    defaults = Options()

    try:
        buffer_size_kb = int(tracing_cfg.get("buffer_size_kb", defaults.buffer_size_kb))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"tracing.buffer_size_kb must be an integer: {exc}") from exc

    filters = FilterSpec(
        name=args.name,
        pid=args.pid,
        tid=args.tid,
        file=args.filename,
        failure_only=args.failed,
    )
    return Options(
        filters=filters,
        duration=args.duration,
        show_time=args.timestamp,
        queue_per_pid=args.queue_per_pid,
        input_path=args.input,
        tracing_dir=os.getenv("OPENSNOOP_TRACING_DIR") or tracing_cfg.get("dir", defaults.tracing_dir),
        buffer_size_kb=buffer_size_kb,
        probe_name=probe_cfg.get("name", defaults.probe_name),
        probe_function=probe_cfg.get("function", defaults.probe_function),
        probe_fetcharg=probe_cfg.get("fetcharg", defaults.probe_fetcharg),
        syscall_event=probe_cfg.get("syscall_event", defaults.syscall_event),
        path_functions=_str_list(trace_cfg.get("path_functions"), "trace.path_functions", defaults.path_functions),
        exit_syscalls=_str_list(trace_cfg.get("exit_syscalls"), "trace.exit_syscalls", defaults.exit_syscalls),
        lock_path=os.getenv("OPENSNOOP_LOCK_PATH") or session_cfg.get("lock_path", defaults.lock_path),
    )
