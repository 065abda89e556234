from __future__ import annotations

from typing import Iterable, Iterator, TextIO

from opensnoop.correlator import Correlator
from opensnoop.emitter import RecordEmitter
from opensnoop.errors import Interrupted
from opensnoop.trace_lines import detect_offset


def iter_complete_lines(handle: TextIO) -> Iterator[str]:
    """Yield newline-terminated lines only; a partial tail is held back."""
    partial = ""
    while True:
        chunk = handle.readline()
        if not chunk:
            return
        if not chunk.endswith("\n"):
            partial += chunk
            continue
        line = partial + chunk
        partial = ""
        yield line


def run_buffered(lines: list[str], correlator: Correlator, emitter: RecordEmitter) -> int:
    correlator.offset = detect_offset(lines)
    for item in correlator.process_all(lines):
        emitter.emit(item)
    return emitter.records


def run_live(lines: Iterable[str], correlator: Correlator, emitter: RecordEmitter) -> int:
    try:
        for raw in lines:
            if not raw.endswith("\n"):
                continue
            item = correlator.process(raw)
            if item is not None:
                emitter.emit(item)
    except (Interrupted, KeyboardInterrupt):
        pass
    return emitter.records
