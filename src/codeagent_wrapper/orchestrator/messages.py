"""Recover the agent's reply text from backend-specific event shapes."""

from __future__ import annotations

import json
from collections.abc import Iterable
from enum import Enum
from typing import Any


class EventFormat(str, Enum):
    """Event shape a backend emits; UNKNOWN falls back to generic keys."""

    CODEX = "codex"
    CLAUDE = "claude"
    GEMINI = "gemini"
    OPENCODE = "opencode"
    UNKNOWN = "unknown"


def detect_event_format(event: Any) -> EventFormat:
    """Guess the emitting backend from the keys of one decoded event."""

    if not isinstance(event, dict):
        return EventFormat.UNKNOWN
    item = event.get("item")
    if event.get("thread_id") or (isinstance(item, dict) and item.get("type")):
        return EventFormat.CODEX
    if (
        event.get("subtype")
        or event.get("result")
        or (event.get("type") == "result" and event.get("session_id"))
    ):
        return EventFormat.CLAUDE
    if (
        event.get("role")
        or "delta" in event
        or (event.get("type") == "init" and event.get("session_id"))
    ):
        return EventFormat.GEMINI
    if event.get("sessionID") and event.get("part"):
        return EventFormat.OPENCODE
    return EventFormat.UNKNOWN


def extract_message(event: Any, event_format: EventFormat) -> str:
    """Return the reply text one event carries, or an empty string."""

    if not isinstance(event, dict):
        return ""
    if event_format is EventFormat.CODEX:
        return _first_text(_as_object(event.get("item")), "content", "text")
    if event_format is EventFormat.CLAUDE:
        return _first_text(event, "result", "content")
    if event_format is EventFormat.GEMINI:
        return _first_text(event, "content")
    if event_format is EventFormat.OPENCODE:
        return _first_text(_as_object(event.get("part")), "text", "content")
    return _first_text(event, "content", "text", "message")


def collect_message(events: Iterable[Any]) -> str:
    """Concatenate reply text across a run's events.

    The format is taken from the first event that identifies its backend
    and applies to every event after it.
    """

    event_format = EventFormat.UNKNOWN
    chunks: list[str] = []
    for event in events:
        if event_format is EventFormat.UNKNOWN:
            event_format = detect_event_format(event)
        text = extract_message(event, event_format)
        if text:
            chunks.append(text)
    return "".join(chunks)


def _as_object(value: Any) -> dict[str, Any]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except (ValueError, RecursionError):
            return {}
    return value if isinstance(value, dict) else {}


def _first_text(payload: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return ""
