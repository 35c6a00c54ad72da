"""Output sanitization, backend noise filtering and metric extraction."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

from codeagent_wrapper.orchestrator.messages import collect_message
from codeagent_wrapper.orchestrator.models import TaskResult

_ANSI_CSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")
_ANSI_OSC_RE = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

GEMINI_NOISE_PATTERNS = (
    re.compile(r"^\[STARTUP\]"),
    re.compile(r"Session cleanup disabled"),
    re.compile(r"^Warning:"),
    re.compile(r"^\(node:"),
    re.compile(r"Loaded cached credentials"),
    re.compile(r"Loading extension:"),
)
CODEX_NOISE_PATTERNS = (
    re.compile(r"ERROR codex_core::codex: needs_follow_up:"),
    re.compile(r"ERROR codex_core::skills::loader:"),
)

_COVERAGE_PATTERNS = (
    re.compile(r"Coverage:\s*(\d+(?:\.\d+)?)\s*%", re.IGNORECASE),
    re.compile(r"(\d+(?:\.\d+)?)\s*%\s*(?:coverage|covered)", re.IGNORECASE),
    re.compile(r"All files\s*\|\s*(\d+(?:\.\d+)?)"),
)
_FILES_CHANGED_PATTERNS = (
    re.compile(r"(\d+)\s*files?\s*changed"),
    re.compile(r"Changed\s*(\d+)\s*files?"),
    re.compile(r"Modified:\s*(\d+)"),
)
_TESTS_PASSED_RE = re.compile(r"(\d+)\s*(?:tests?\s+)?passed", re.IGNORECASE)
_TESTS_FAILED_RE = re.compile(r"(\d+)\s*(?:tests?\s+)?failed", re.IGNORECASE)
_TESTS_TOTAL_RE = re.compile(r"tests?:\s*(\d+)", re.IGNORECASE)

_TEXT_KEYS = ("content", "text", "message", "result", "output")


@dataclass(slots=True, frozen=True)
class TestSummary:
    """Counts parsed from a test runner summary line."""

    __test__ = False

    passed: int
    failed: int


def sanitize_output(text: str) -> str:
    """Strip ANSI escape sequences and stray control characters."""

    text = _ANSI_OSC_RE.sub("", text)
    text = _ANSI_CSI_RE.sub("", text)
    return _CONTROL_CHARS_RE.sub("", text)


def noise_patterns(backend: str | None) -> tuple[re.Pattern[str], ...]:
    if backend == "gemini":
        return GEMINI_NOISE_PATTERNS
    if backend == "codex":
        return CODEX_NOISE_PATTERNS
    return GEMINI_NOISE_PATTERNS + CODEX_NOISE_PATTERNS


def is_noise_line(line: str, backend: str | None = None) -> bool:
    return any(pattern.search(line) for pattern in noise_patterns(backend))


def filter_noise(text: str, backend: str | None = None) -> str:
    """Drop known startup/diagnostic noise lines emitted by a backend."""

    patterns = noise_patterns(backend)
    kept = [
        line
        for line in text.split("\n")
        if not any(pattern.search(line) for pattern in patterns)
    ]
    return "\n".join(kept)


def extract_coverage(text: str) -> float | None:
    for pattern in _COVERAGE_PATTERNS:
        match = pattern.search(text)
        if match:
            return float(match.group(1))
    return None


def extract_files_changed(text: str) -> int | None:
    for pattern in _FILES_CHANGED_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    return None


def extract_test_results(text: str) -> TestSummary | None:
    """Read passed/failed counts; the last line mentioning each wins.

    A bare ``Tests: N`` counts as passed when nothing reported passes.
    """

    passed: int | None = None
    failed: int | None = None
    for line in text.splitlines():
        match = _TESTS_PASSED_RE.search(line)
        if match:
            passed = int(match.group(1))
        match = _TESTS_FAILED_RE.search(line)
        if match:
            failed = int(match.group(1))
        match = _TESTS_TOTAL_RE.search(line)
        if match and not passed:
            passed = int(match.group(1))
    if passed is None and failed is None:
        return None
    return TestSummary(passed=passed or 0, failed=failed or 0)


def collect_event_text(events: Iterable[Any]) -> str:
    """Concatenate the human-readable text carried by decoded events."""

    chunks: list[str] = []
    for event in events:
        _collect_strings(event, chunks)
    return "\n".join(chunks)


def _collect_strings(value: Any, sink: list[str]) -> None:
    if isinstance(value, dict):
        for key in _TEXT_KEYS:
            nested = value.get(key)
            if isinstance(nested, str):
                sink.append(nested)
            elif isinstance(nested, (dict, list)):
                _collect_strings(nested, sink)
    elif isinstance(value, list):
        for item in value:
            _collect_strings(item, sink)


def apply_output_metrics(result: TaskResult, *, backend: str | None = None) -> TaskResult:
    """Return a copy of `result` with reply message and metrics filled in.

    Values already present on the result are kept.
    """

    text = collect_event_text(result.events)
    if result.stderr:
        text = f"{text}\n{result.stderr}"
    text = filter_noise(sanitize_output(text), backend)
    tests = extract_test_results(text)
    return replace(
        result,
        message=result.message or filter_noise(sanitize_output(collect_message(result.events)), backend),
        files_changed=result.files_changed if result.files_changed is not None else extract_files_changed(text),
        coverage=result.coverage if result.coverage is not None else extract_coverage(text),
        tests_passed=(
            result.tests_passed if result.tests_passed is not None or tests is None else tests.passed
        ),
        tests_failed=(
            result.tests_failed if result.tests_failed is not None or tests is None else tests.failed
        ),
        stderr=filter_noise(sanitize_output(result.stderr), backend),
    )
