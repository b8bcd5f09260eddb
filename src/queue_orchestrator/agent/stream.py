"""Helpers for the agent CLI's `--output-format=stream-json` event stream."""

from __future__ import annotations

import json
import re
from typing import Any

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")
EXIT_EVENT_TYPE = "agent_exit"


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


def parse_stream_line(line: str) -> dict[str, Any] | None:
    """Decode one line of the stream; None for terminal noise and partial JSON."""
    stripped = strip_ansi(line).strip()
    if not stripped.startswith("{"):
        return None
    try:
        event = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None


def extract_stream_text(event: dict[str, Any]) -> str | None:
    """Narrative text carried by an event.

    Only top-level assistant messages count; sub-agent messages carry a
    parent_tool_use_id and are tool noise from the orchestrator's view.
    """
    event_type = event.get("type")
    if event_type == "assistant" and not event.get("parent_tool_use_id"):
        message = event.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            return None
        text = "".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        )
        return text or None
    if event_type == "result" and isinstance(event.get("result"), str):
        return event["result"]
    return None


def is_result_event(event: dict[str, Any]) -> bool:
    return event.get("type") == "result"


def is_exit_event(event: dict[str, Any]) -> bool:
    """The line the runner's shell wrapper prints once the agent process exits."""
    return event.get("type") == EXIT_EVENT_TYPE
