from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import yaml


REPO_ROOT = Path(__file__).resolve().parents[2]
CORRELATE_DIR = Path(__file__).resolve().parent / "correlate"
REQUIRED_FILES = {"input.log", "config.yaml", "expected.txt"}


def discover_cases() -> list[Path]:
    return sorted(path for path in CORRELATE_DIR.glob("case_*") if path.is_dir())


def load_case_config(case_dir: Path) -> dict:
    with (case_dir / "config.yaml").open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def run_opensnoop(args: list[str], stdin: str | None = None) -> subprocess.CompletedProcess[str]:
    env = dict(os.environ)
    env.pop("OPENSNOOP_CONFIG", None)
    return subprocess.run(
        [sys.executable, "-m", "opensnoop", *args],
        cwd=str(REPO_ROOT),
        env=env,
        input=stdin,
        text=True,
        capture_output=True,
        check=False,
    )


def normalize(text: str) -> list[str]:
    return [line.rstrip() for line in text.splitlines()]
