"""Parser for the `WORK_RESULT:` completion block agents append to their output.

Agents are asked to finish every stage with a block like:

    WORK_RESULT:
      success: true
      stage_completed: research
      branch_name: agent/AGI-4
      next_status: "∞ Needs Plan"
      summary: |
        Researched the codebase.
        Documented the auth flow.

Transcripts also contain narration, tool output, and sometimes earlier failed
attempts, so only the last block counts. The marker must open its line (after
optional Markdown emphasis or quoting); a mention of it inside prose is not a block.

Grammar, line by line after the marker:
- `  key: value` at exactly two columns of indentation starts a field.
- a blank line or a line indented deeper than two columns continues the current
  field; it is appended on a new line with its indentation removed.
- a line starting with a code fence, or any other line that is not indented
  deeper than two columns, ends the block.
"""

from __future__ import annotations

import logging
import re

from queue_orchestrator.storage.models import WorkResult
from queue_orchestrator.workflow.status import is_in_progress, resolve_status_token

logger = logging.getLogger(__name__)

MARKER = "WORK_RESULT:"
FENCE = "```"
FIELD_INDENT = 2
TAB_WIDTH = 4

_MARKER_RE = re.compile(r"^[ \t>*_#`]*" + re.escape(MARKER), re.MULTILINE)
_FIELD_RE = re.compile(r"^(?P<key>[A-Za-z_]\w*):(?:[ \t]+(?P<value>.*)|[ \t]*)$")
_BLOCK_INDICATORS = {"|", "|-", "|+", ">", ">-", ">+"}
_TEXT_FIELDS = (
    "stage_completed",
    "branch_name",
    "commit_hash",
    "merge_status",
    "pr_url",
    "preview_url",
    "artifact_path",
    "summary",
    "error",
)


def parse_work_result(transcript: str) -> WorkResult | None:
    """Return the last completion block in the transcript, or None if there is none.

    A marker followed by no fields still yields a record (with success=False);
    only a transcript without any marker returns None.
    """
    last = None
    for last in _MARKER_RE.finditer(transcript):
        pass
    if last is None:
        return None

    fields = parse_block(transcript[last.end() :])
    return _to_result(fields)


def parse_block(text: str) -> dict[str, str]:
    """Parse the lines following a marker into raw string fields."""
    lines = text.splitlines()
    # The remainder of the marker line is never part of a field.
    lines = lines[1:] if lines else []

    fields: dict[str, list[str]] = {}
    current: str | None = None

    for line in lines:
        if line.startswith(FENCE):
            break

        if not line.strip():
            if current is not None:
                fields[current].append("")
            continue

        expanded = line.expandtabs(TAB_WIDTH)
        indent = len(expanded) - len(expanded.lstrip(" "))

        if indent == FIELD_INDENT:
            match = _FIELD_RE.match(expanded[FIELD_INDENT:].rstrip())
            if match:
                current = match.group("key")
                fields[current] = [match.group("value") or ""]
                continue
            break

        if indent > FIELD_INDENT and current is not None:
            fields[current].append(expanded.strip())
            continue

        break

    return {key: _normalize(parts) for key, parts in fields.items()}


def _normalize(parts: list[str]) -> str:
    head = parts[0].strip()
    if head in _BLOCK_INDICATORS:
        return "\n".join(parts[1:]).strip()
    if len(parts) == 1 or not "".join(parts[1:]).strip():
        return _unquote(head)
    return "\n".join([head, *parts[1:]]).strip()


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def _to_result(fields: dict[str, str]) -> WorkResult:
    result = WorkResult(success=fields.get("success", "").strip().lower() == "true")

    for name in _TEXT_FIELDS:
        if name in fields:
            setattr(result, name, fields[name])

    raw_next = fields.get("next_status")
    if raw_next is not None:
        resolved = resolve_status_token(raw_next)
        if resolved is None:
            logger.warning("work_result event=unknown_next_status value=%r action=ignore", raw_next)
        elif is_in_progress(resolved):
            # In-progress states are owned by the dispatcher.
            logger.warning(
                "work_result event=in_progress_next_status value=%r action=ignore", raw_next
            )
        else:
            result.next_status = resolved

    return result
