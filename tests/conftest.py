"""Shared test fixtures."""

from __future__ import annotations

import json
import logging
import os
import stat
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from codeagent_wrapper.orchestrator.backend import echo_agent

FAKE_BACKENDS = ("codex", "claude", "gemini", "opencode")


@dataclass(slots=True)
class FakeAgents:
    """Temporary `bin` directory with echo-agent stand-ins for every backend."""

    bin_dir: Path
    trace_file: Path

    def traces(self) -> list[dict[str, Any]]:
        if not self.trace_file.exists():
            return []
        return [
            json.loads(line)
            for line in self.trace_file.read_text("utf-8").splitlines()
            if line.strip()
        ]


def write_script(path: Path, body: str) -> None:
    path.write_text(f"#!/bin/sh\n{body}\n", "utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)


def write_echo_agent(path: Path) -> None:
    write_script(path, f'exec "{sys.executable}" "{echo_agent.__file__}" "$@"')


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch) -> Path:
    """Drop wrapper variables from the environment and point home at tmp_path."""

    for name in list(os.environ):
        if name.startswith("CODEAGENT_") or name == "CODEX_TIMEOUT":
            monkeypatch.delenv(name)
    home = tmp_path / "codeagent-home"
    monkeypatch.setenv("CODEAGENT_HOME", str(home))
    return home


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def fake_agents(tmp_path: Path, monkeypatch) -> FakeAgents:
    """Put echo-agent executables for all backends (and nothing else) on PATH."""

    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    for name in FAKE_BACKENDS:
        write_echo_agent(bin_dir / name)
    trace_file = tmp_path / "trace.jsonl"
    monkeypatch.setenv("PATH", str(bin_dir))
    monkeypatch.setenv("CODEAGENT_ECHO_TRACE_FILE", str(trace_file))
    return FakeAgents(bin_dir=bin_dir, trace_file=trace_file)


@pytest.fixture()
def work_dir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path
