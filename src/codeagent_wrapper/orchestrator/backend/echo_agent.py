"""Local stand-in for a backend CLI used in integration tests.

Echoes its task back as a stream of JSONL events. Behaviour is steered by
environment variables:

* ``CODEAGENT_ECHO_SESSION_ID``: session id reported in events.
* ``CODEAGENT_ECHO_DELAY_SECONDS``: sleep before emitting the final event.
* ``CODEAGENT_ECHO_EXIT_CODE``: process exit code.
* ``CODEAGENT_ECHO_NOISE``: interleave blank, free-text and broken lines.
* ``CODEAGENT_ECHO_SUMMARY``: text carried by the final event.
* ``CODEAGENT_ECHO_STDERR``: text written to stderr.
* ``CODEAGENT_ECHO_TRACE_FILE``: append one JSON line per run with argv,
  input and wall-clock start/end times.
"""

from __future__ import annotations

import json
import os
import sys
import time
from typing import Any

_STDIN_TARGET = "-"


def main(argv: list[str] | None = None) -> int:
    """Emit deterministic events for the task given as the last argument."""

    args = list(sys.argv[1:] if argv is None else argv)
    started = time.time()
    target = args[-1] if args else ""
    task = sys.stdin.read() if target == _STDIN_TARGET else target
    session_id = os.getenv("CODEAGENT_ECHO_SESSION_ID", "echo-session")
    noise = os.getenv("CODEAGENT_ECHO_NOISE", "0") == "1"

    _emit({"type": "init", "session_id": session_id})
    if noise:
        _write_line("")
        _write_line("[STARTUP] warming up")
        _write_line("{not valid json")
    _emit({"type": "assistant", "content": task})

    stderr_text = os.getenv("CODEAGENT_ECHO_STDERR")
    if stderr_text:
        sys.stderr.write(stderr_text + "\n")
        sys.stderr.flush()

    delay = float(os.getenv("CODEAGENT_ECHO_DELAY_SECONDS", "0"))
    if delay > 0:
        time.sleep(delay)

    summary = os.getenv("CODEAGENT_ECHO_SUMMARY", "done")
    _emit({"type": "done", "content": summary, "sessionId": session_id})

    trace_file = os.getenv("CODEAGENT_ECHO_TRACE_FILE")
    if trace_file:
        record = {
            "argv": args,
            "input": task,
            "stdin": target == _STDIN_TARGET,
            "cwd": os.getcwd(),
            "start": started,
            "end": time.time(),
        }
        with open(trace_file, "a", encoding="utf-8") as handle:
            handle.write(json.dumps(record) + "\n")

    return int(os.getenv("CODEAGENT_ECHO_EXIT_CODE", "0"))


def _emit(event: dict[str, Any]) -> None:
    _write_line(json.dumps(event, ensure_ascii=False))


def _write_line(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
