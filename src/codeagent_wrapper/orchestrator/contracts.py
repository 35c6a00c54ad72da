"""JSON contracts for batch input and run result output."""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from codeagent_wrapper.orchestrator.errors import BatchFormatError
from codeagent_wrapper.orchestrator.models import TaskResult, TaskSpec

_PROGRESS_SYMBOLS = {
    "assistant": "💬",
    "tool_use": "🔧",
    "error": "❌",
    "done": "✅",
}
_PROGRESS_SYMBOLS_ASCII = {
    "assistant": "[>]",
    "tool_use": "[*]",
    "error": "[!]",
    "done": "[+]",
}
_PROGRESS_DEFAULT_SYMBOL = "📝"
_PROGRESS_DEFAULT_SYMBOL_ASCII = "[-]"
_PROGRESS_MAX_CHARS = 60


def parse_batch(lines: Iterable[str]) -> list[TaskSpec]:
    """Parse JSONL batch input into task specs.

    Blank lines and lines starting with ``#`` are ignored.

    Raises:
        BatchFormatError: a line is not a valid task object.
    """

    specs: list[TaskSpec] = []
    for line_no, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            raw = json.loads(line)
        except ValueError as error:
            raise BatchFormatError(line_no, f"invalid JSON ({error})") from error
        specs.append(_task_spec_from_json(raw, line_no))
    return specs


def _task_spec_from_json(raw: Any, line_no: int) -> TaskSpec:
    if not isinstance(raw, dict):
        raise BatchFormatError(line_no, "expected a JSON object")

    task_id = raw.get("id")
    task = raw.get("task")
    if not isinstance(task_id, str) or not task_id.strip():
        raise BatchFormatError(line_no, "'id' must be a non-empty string")
    if not isinstance(task, str):
        raise BatchFormatError(line_no, "'task' must be a string")

    dependencies = raw.get("dependencies", [])
    if not isinstance(dependencies, list) or not all(isinstance(dep, str) for dep in dependencies):
        raise BatchFormatError(line_no, "'dependencies' must be an array of strings")

    skip_permissions = raw.get("skipPermissions", False)
    if not isinstance(skip_permissions, bool):
        raise BatchFormatError(line_no, "'skipPermissions' must be a boolean")

    optional: dict[str, str | None] = {}
    for key in ("workDir", "sessionId", "backend", "model", "agent", "promptFile"):
        value = raw.get(key)
        if value is not None and not isinstance(value, str):
            raise BatchFormatError(line_no, f"'{key}' must be a string")
        optional[key] = value or None

    work_dir = optional["workDir"]
    prompt_file = optional["promptFile"]
    return TaskSpec(
        id=task_id,
        task=task,
        dependencies=tuple(dependencies),
        work_dir=Path(work_dir) if work_dir else None,
        session_id=optional["sessionId"],
        backend=optional["backend"],
        model=optional["model"],
        agent=optional["agent"],
        prompt_file=Path(prompt_file) if prompt_file else None,
        skip_permissions=skip_permissions,
    )


def _duration_ms(result: TaskResult) -> int:
    return int(result.duration_seconds * 1000)


def single_result_payload(result: TaskResult) -> dict[str, Any]:
    """Build the output object for one task."""

    return {
        "success": result.success,
        "exitCode": result.exit_code,
        "duration": _duration_ms(result),
        "message": result.message,
        "sessionId": result.session_id,
        "filesChanged": result.files_changed,
        "coverage": result.coverage,
        "testsPassed": result.tests_passed,
        "testsFailed": result.tests_failed,
        "events": result.events,
    }


def batch_result_payload(results: Sequence[TaskResult], *, full_output: bool = False) -> dict[str, Any]:
    """Build the summary object for a batch run, tasks in input order."""

    tasks: list[dict[str, Any]] = []
    for index, result in enumerate(results):
        entry: dict[str, Any] = {
            "taskIndex": index,
            "taskId": result.task_id,
            "success": result.success,
            "exitCode": result.exit_code,
            "duration": _duration_ms(result),
            "sessionId": result.session_id,
        }
        if result.error:
            entry["error"] = result.error
        if full_output:
            entry["result"] = single_result_payload(result)
        tasks.append(entry)

    successful = sum(1 for result in results if result.success)
    return {
        "success": successful == len(results),
        "totalTasks": len(results),
        "successfulTasks": successful,
        "failedTasks": len(results) - successful,
        "totalDuration": sum(_duration_ms(result) for result in results),
        "tasks": tasks,
    }


def dump_payload(payload: dict[str, Any]) -> str:
    """Serialize an output payload as pretty-printed JSON."""

    return json.dumps(payload, ensure_ascii=False, indent=2)


def format_progress_message(event: Any, *, ascii_mode: bool = False) -> str | None:
    """Render a one-line progress summary of a backend event."""

    if not isinstance(event, dict):
        return None
    event_type = event.get("type")
    if not isinstance(event_type, str):
        event_type = ""
    if ascii_mode:
        symbol = _PROGRESS_SYMBOLS_ASCII.get(event_type, _PROGRESS_DEFAULT_SYMBOL_ASCII)
    else:
        symbol = _PROGRESS_SYMBOLS.get(event_type, _PROGRESS_DEFAULT_SYMBOL)

    description = event.get("content")
    if not isinstance(description, str):
        description = event.get("tool")
    if not isinstance(description, str):
        description = "..."
    if len(description) > _PROGRESS_MAX_CHARS:
        description = description[: _PROGRESS_MAX_CHARS - 3] + "..."
    return f"{symbol} {description}"
