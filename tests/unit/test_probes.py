from __future__ import annotations

from pathlib import Path

import pytest

from opensnoop.errors import Interrupted, ProbeError
from opensnoop.probes import ProbeController, ProbeSpec, pid_filter
from tests.support.synthetic_trace import HEADER_LONG, build_tracefs, make_open


pytestmark = pytest.mark.unit

SPEC = ProbeSpec("getnameprobe", "getname", "+0(+0($retval)):string")
EVENTS = ["kprobes/getnameprobe", "syscalls/sys_exit_open"]


def read(root: Path, *parts: str) -> str:
    return root.joinpath(*parts).read_text(encoding="utf-8")


def test_probe_definition() -> None:
    assert SPEC.definition() == "r:getnameprobe getname arg1=+0(+0($retval)):string"
    assert SPEC.event == "kprobes/getnameprobe"
    assert ProbeSpec("p1", "do_sys_open", "+0(%si):string", is_return=False).definition().startswith("p:p1 ")
    assert pid_filter(181) == "common_pid == 181"
    assert pid_filter(None) is None


def test_lifecycle_writes_and_teardown(tmp_path: Path) -> None:
    build_tracefs(tmp_path, EVENTS, trace_text="old data\n")
    controller = ProbeController(str(tmp_path))
    controller.set_buffer_size(4096)
    controller.install(SPEC)
    for event in EVENTS:
        controller.set_filter(event, "common_pid == 7")
        controller.enable(event)

    assert read(tmp_path, "buffer_size_kb") == "4096\n"
    assert read(tmp_path, "kprobe_events") == SPEC.definition() + "\n"
    assert read(tmp_path, "events", "syscalls", "sys_exit_open", "enable") == "1\n"
    assert read(tmp_path, "events", "kprobes", "getnameprobe", "filter") == "common_pid == 7\n"

    assert controller.teardown() == []
    assert read(tmp_path, "events", "kprobes", "getnameprobe", "enable") == "0\n"
    assert read(tmp_path, "events", "syscalls", "sys_exit_open", "filter") == "0\n"
    assert read(tmp_path, "kprobe_events").splitlines()[-1] == "-:getnameprobe"
    assert read(tmp_path, "buffer_size_kb") == "1408\n"
    assert read(tmp_path, "trace") == "\n"
    assert controller.teardown() == []


def test_failed_write_raises_probe_error(tmp_path: Path) -> None:
    build_tracefs(tmp_path, [])
    controller = ProbeController(str(tmp_path))
    with pytest.raises(ProbeError, match="events/kprobes/getnameprobe/enable"):
        controller.enable("kprobes/getnameprobe")
    assert controller.enabled == []


def test_teardown_collects_errors(tmp_path: Path) -> None:
    build_tracefs(tmp_path, EVENTS)
    controller = ProbeController(str(tmp_path))
    controller.enable("kprobes/getnameprobe")
    (tmp_path / "events" / "kprobes" / "getnameprobe" / "enable").unlink()
    (tmp_path / "events" / "kprobes" / "getnameprobe" / "filter").unlink()
    (tmp_path / "events" / "kprobes" / "getnameprobe").rmdir()
    errors = controller.teardown()
    assert len(errors) == 1
    assert "getnameprobe" in errors[0]
    assert controller.enabled == []


def test_snapshot_header_and_stream(tmp_path: Path) -> None:
    body = make_open(task="a", pid=1, path="/x", ret="0x3", flags="d...")
    build_tracefs(tmp_path, EVENTS, trace_text="# tracer: nop\n" + HEADER_LONG + "".join(body))
    (tmp_path / "trace_pipe").write_text("".join(body) + "partial", encoding="utf-8")
    controller = ProbeController(str(tmp_path))
    assert controller.header_lines() == ["# tracer: nop\n", HEADER_LONG]
    assert controller.snapshot()[2:] == body
    assert list(controller.open_stream()) == body


def test_missing_stream_raises(tmp_path: Path) -> None:
    controller = ProbeController(str(tmp_path / "nowhere"))
    with pytest.raises(ProbeError, match="trace_pipe"):
        list(controller.open_stream())
    with pytest.raises(ProbeError, match="trace"):
        controller.snapshot()


def test_teardown_finishes_after_an_interruption(tmp_path: Path) -> None:
    """A stop signal landing mid-teardown does not leave the kprobe installed."""
    build_tracefs(tmp_path, EVENTS)
    controller = ProbeController(str(tmp_path))
    controller.install(SPEC)
    for event in EVENTS:
        controller.enable(event)

    real_disable = controller.disable
    calls: list[str] = []

    def disable_once_interrupted(event: str) -> None:
        calls.append(event)
        if len(calls) == 1:
            raise Interrupted("received signal SIGINT")
        real_disable(event)

    controller.disable = disable_once_interrupted
    errors = controller.teardown()

    assert len(errors) == 1
    assert "interrupted" in errors[0]
    assert calls == list(reversed(EVENTS))
    assert read(tmp_path, "events", "kprobes", "getnameprobe", "enable") == "0\n"
    assert read(tmp_path, "kprobe_events").splitlines()[-1] == "-:getnameprobe"
    assert controller.installed == []
