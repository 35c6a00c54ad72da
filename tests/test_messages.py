from __future__ import annotations

import json

import allure
import pytest

from codeagent_wrapper.orchestrator.messages import (
    EventFormat,
    collect_message,
    detect_event_format,
    extract_message,
)

pytestmark = [
    allure.epic("Agent Runtime"),
    allure.feature("Reply Message Extraction"),
]

CODEX_EVENTS = [
    {"type": "thread.started", "thread_id": "th-1"},
    {"type": "turn.started"},
    {"type": "item.completed", "item": {"type": "reasoning", "text": "Thinking. "}},
    {"type": "item.completed", "item": json.dumps({"type": "agent_message", "content": "Done."})},
    {"type": "turn.completed", "usage": {"input_tokens": 10}},
]
CLAUDE_EVENTS = [
    {"type": "system", "subtype": "init", "session_id": "cl-1"},
    {"type": "assistant", "message": {"content": [{"type": "text", "text": "ignored"}]}},
    {"type": "result", "subtype": "success", "result": "All tests pass.", "session_id": "cl-1"},
]
GEMINI_EVENTS = [
    {"type": "init", "session_id": "ge-1", "model": "gemini-2.5-pro"},
    {"type": "message", "role": "user", "content": ""},
    {"type": "message", "role": "assistant", "content": "Hel", "delta": True},
    {"type": "message", "role": "assistant", "content": "lo", "delta": True},
    {"type": "result", "status": "success"},
]
OPENCODE_EVENTS = [
    {"type": "step_start", "sessionID": "oc-1", "part": {"type": "step-start"}},
    {"type": "text", "sessionID": "oc-1", "part": {"type": "text", "text": "Fixed "}},
    {"type": "text", "sessionID": "oc-1", "part": json.dumps({"type": "text", "content": "it."})},
]


@pytest.mark.parametrize(
    ("events", "expected_format", "expected_message"),
    [
        (CODEX_EVENTS, EventFormat.CODEX, "Thinking. Done."),
        (CLAUDE_EVENTS, EventFormat.CLAUDE, "All tests pass."),
        (GEMINI_EVENTS, EventFormat.GEMINI, "Hello"),
        (OPENCODE_EVENTS, EventFormat.OPENCODE, "Fixed it."),
    ],
    ids=["codex", "claude", "gemini", "opencode"],
)
def test_backend_event_shapes(
    events: list[dict],
    expected_format: EventFormat,
    expected_message: str,
) -> None:
    assert detect_event_format(events[0]) is expected_format
    assert collect_message(events) == expected_message


def test_unknown_format_uses_generic_keys() -> None:
    events = [{"type": "progress", "text": "step 1; "}, {"type": "note", "message": "step 2"}]

    assert detect_event_format(events[0]) is EventFormat.UNKNOWN
    assert collect_message(events) == "step 1; step 2"


def test_format_is_detected_from_first_identifying_event() -> None:
    events = [
        {"type": "noise"},
        {"type": "init", "session_id": "ge-1"},
        {"type": "message", "role": "assistant", "content": "ok"},
    ]

    assert collect_message(events) == "ok"


@pytest.mark.parametrize(
    "event",
    [
        [1, 2],
        {"item": "{not json"},
        {"item": {"type": "agent_message", "text": 5}},
    ],
)
def test_malformed_events_yield_no_text(event: object) -> None:
    assert extract_message(event, EventFormat.CODEX) == ""
