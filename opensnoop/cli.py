#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os
import sys
import time

from opensnoop.config import Options, build_options, load_config, resolve_config_path
from opensnoop.correlator import Correlator
from opensnoop.emitter import RecordEmitter
from opensnoop.errors import ConfigError, Interrupted, OpensnoopError
from opensnoop.probes import ProbeController, ProbeSpec, pid_filter
from opensnoop.runner import run_buffered, run_live
from opensnoop.session import SessionGuard
from opensnoop.trace_lines import detect_offset

EXAMPLES = """examples:
    opensnoop                 # watch open()s live (unbuffered)
    opensnoop -d 2            # trace open()s for 2 seconds (buffered)
    opensnoop -p 181          # trace I/O issued by PID 181 only
    opensnoop conf            # trace filenames containing "conf"
    opensnoop 'log$'          # filenames ending in "log"
    opensnoop -x              # only show failed opens
    opensnoop -n ssh          # trace process names matching "ssh"
    opensnoop --input trace.txt  # decode a captured ftrace buffer
"""


def positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return parsed


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="opensnoop",
        description="Trace open() syscalls with ftrace.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EXAMPLES,
    )
    parser.add_argument("-d", dest="duration", type=float, help="duration (secs), enables buffering")
    parser.add_argument("-n", dest="name", help="process name to match on open")
    parser.add_argument("-p", dest="pid", type=positive_int, help="PID to match on open")
    parser.add_argument("-L", dest="tid", type=positive_int, help="thread id to match on open")
    parser.add_argument("-t", dest="timestamp", action="store_true", help="include time (seconds)")
    parser.add_argument("-x", dest="failed", action="store_true", help="only show failed opens")
    parser.add_argument("filename", nargs="?", help="match filename (partials, REs, ok)")
    parser.add_argument("--config", help="path to opensnoop.yaml")
    parser.add_argument("--input", help="decode a captured trace file instead of tracing ('-' for stdin)")
    parser.add_argument(
        "--queue-per-pid",
        action="store_true",
        help="keep every unconsumed path per pid instead of only the latest",
    )
    return parser.parse_args(argv)


def banner(options: Options) -> str:
    filters = options.filters
    text = "Tracing open()s"
    if filters.pid is not None:
        text += f" issued by PID {filters.pid}"
    elif filters.tid is not None:
        text += f" issued by TID {filters.tid}"
    elif filters.name is not None:
        text += f' issued by process name "{filters.name}"'
    if filters.file is not None:
        text += f' for filenames containing "{filters.file}"'
    if options.duration is not None:
        return text + f" for {options.duration:g} seconds (buffered)..."
    return text + ". Ctrl-C to end."


def read_input(path: str) -> list[str]:
    if path == "-":
        return sys.stdin.readlines()
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as handle:
            return handle.readlines()
    except OSError as exc:
        raise ConfigError(f"cannot read input {path}: {exc.strerror}") from exc


def replay(options: Options, correlator: Correlator, emitter: RecordEmitter) -> int:
    lines = read_input(options.input_path)
    if options.filters.pid is not None or options.filters.tid is not None:
        emitter.status("pid/tid filters are applied kernel-side and are ignored with --input")
    emitter.header()
    run_buffered(lines, correlator, emitter)
    return 0


def trace(options: Options, correlator: Correlator, emitter: RecordEmitter) -> int:
    controller = ProbeController(options.tracing_dir)
    spec = ProbeSpec(options.probe_name, options.probe_function, options.probe_fetcharg)
    events = [spec.event, options.syscall_event]
    filters = options.filters
    expression = pid_filter(filters.pid if filters.pid is not None else filters.tid)

    with SessionGuard(options.tracing_dir, options.lock_path) as guard:
        try:
            if options.mode == "buffered":
                controller.set_buffer_size(options.buffer_size_kb)
            controller.clear()
            controller.install(spec)
            if expression:
                for event in events:
                    controller.set_filter(event, expression)
            for event in events:
                controller.enable(event)
            emitter.status(banner(options))

            if options.mode == "buffered":
                try:
                    time.sleep(options.duration)
                except Interrupted:
                    pass
                for event in reversed(events):
                    controller.disable(event)
                emitter.status("Ending tracing...")
                emitter.header()
                run_buffered(controller.snapshot(), correlator, emitter)
            else:
                correlator.offset = detect_offset(controller.header_lines())
                emitter.header()
                run_live(controller.open_stream(), correlator, emitter)
                emitter.status("\nEnding tracing...")
        finally:
            guard.ignore_signals()
            for error in controller.teardown():
                emitter.error(f"teardown: {error}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    emitter = RecordEmitter(show_time=args.timestamp)
    try:
        cfg = load_config(resolve_config_path(args.config))
        options = build_options(args, cfg)
        options.validate()
        engine = options.filters.compile()
        correlator = Correlator(
            engine,
            show_time=options.show_time,
            queue_per_pid=options.queue_per_pid,
            path_functions=options.path_functions,
            exit_syscalls=options.exit_syscalls,
        )
        if options.input_path is not None:
            return replay(options, correlator, emitter)
        return trace(options, correlator, emitter)
    except Interrupted:
        return 0
    except KeyboardInterrupt:
        return 130
    except BrokenPipeError:
        # the reader went away; keep the interpreter from flushing into it again at exit
        try:
            stdout_fd = sys.stdout.fileno()
        except (OSError, ValueError):
            return 1
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, stdout_fd)
        os.close(devnull)
        return 1
    except OpensnoopError as exc:
        emitter.error(str(exc))
        return exc.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
