"""Task document format: YAML front matter followed by a free-text body.

    ---
    id: AGI-7
    title: Add login page
    status: Needs Research
    depends_on: [AGI-5]
    ---
    Anything here is for humans and is preserved untouched on every write.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import yaml

from queue_orchestrator.errors import TaskDocumentError
from queue_orchestrator.storage.models import RESULT_DOCUMENT_FIELDS, Task, WorkResult
from queue_orchestrator.workflow.status import TaskStatus, resolve_status

logger = logging.getLogger(__name__)

DELIMITER = "---"
DEFAULT_STATUS = TaskStatus.NEEDS_RESEARCH


def split_document(text: str) -> tuple[dict[str, Any], str]:
    """Return (metadata, body). A document without front matter has empty metadata."""
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != DELIMITER:
        return {}, text

    for index in range(1, len(lines)):
        if lines[index].strip() == DELIMITER:
            raw_meta = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            break
    else:
        raise TaskDocumentError("Front matter is not terminated")

    try:
        parsed = yaml.safe_load(raw_meta)
    except yaml.YAMLError as exc:
        raise TaskDocumentError(f"Front matter is not valid YAML: {exc}") from exc
    if parsed is None:
        parsed = {}
    if not isinstance(parsed, dict):
        raise TaskDocumentError("Front matter must be a mapping")
    return parsed, body


def render_document(metadata: dict[str, Any], body: str = "") -> str:
    dumped = yaml.safe_dump(
        _plain(metadata),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"{DELIMITER}\n{dumped}{DELIMITER}\n{body}"


def id_number(task_id: object, prefix: str) -> int | None:
    if not isinstance(task_id, str):
        return None
    match = re.fullmatch(rf"{re.escape(prefix)}-(\d+)", task_id.strip())
    return int(match.group(1)) if match else None


def assign_missing_ids(documents: list[dict[str, Any]], prefix: str) -> list[int]:
    """Give every document without an id the next number after the corpus maximum.

    Mutates the metadata in place and returns the indexes that changed; the
    caller must persist those documents before anything else reads them.
    """
    highest = 0
    for metadata in documents:
        number = id_number(metadata.get("id"), prefix)
        if number is not None:
            highest = max(highest, number)

    assigned: list[int] = []
    for index, metadata in enumerate(documents):
        if metadata.get("id"):
            continue
        highest += 1
        metadata["id"] = f"{prefix}-{highest}"
        assigned.append(index)
    return assigned


def task_from_metadata(metadata: dict[str, Any], *, source: Path | None = None) -> Task | None:
    """Build a Task, or return None when the status is outside the vocabulary."""
    raw_status = metadata.get("status")
    if raw_status is None:
        status = DEFAULT_STATUS
    else:
        status = resolve_status(raw_status)
        if status is None:
            logger.warning(
                "task_store event=unknown_status source=%s status=%r action=skip",
                source,
                raw_status,
            )
            return None

    artifacts = metadata.get("artifacts")
    return Task(
        task_id=str(metadata["id"]),
        title=_text(metadata.get("title")) or "",
        description=_text(metadata.get("description")) or "",
        repo=_text(metadata.get("repo")) or "",
        status=status,
        depends_on=_id_list(metadata.get("depends_on")),
        group=_text(metadata.get("group")),
        variant_hint=_text(metadata.get("variant_hint")),
        artifacts=(
            {str(k): str(v) for k, v in artifacts.items()} if isinstance(artifacts, dict) else {}
        ),
        branch_name=_text(metadata.get("branch_name")),
        commit_hash=_text(metadata.get("commit_hash")),
        merge_status=_text(metadata.get("merge_status")),
        pr_url=_text(metadata.get("pr_url")),
        preview_url=_text(metadata.get("preview_url")),
        last_summary=_text(metadata.get("last_summary")),
        last_error=_text(metadata.get("last_error")),
        source_path=source,
    )


def merge_result(metadata: dict[str, Any], result: WorkResult) -> dict[str, Any]:
    """Copy of metadata with every field present on the result merged in."""
    merged = dict(metadata)
    for field, key in RESULT_DOCUMENT_FIELDS.items():
        value = getattr(result, field)
        if value is not None:
            merged[key] = value

    if result.artifact_path and result.stage_completed:
        existing = merged.get("artifacts")
        artifacts = dict(existing) if isinstance(existing, dict) else {}
        artifacts[result.stage_completed] = result.artifact_path
        merged["artifacts"] = artifacts
    return merged


def apply_result_to_task(task: Task, result: WorkResult) -> None:
    for field, key in RESULT_DOCUMENT_FIELDS.items():
        value = getattr(result, field)
        if value is not None:
            setattr(task, key, value)
    if result.artifact_path and result.stage_completed:
        task.artifacts = {**task.artifacts, result.stage_completed: result.artifact_path}


def _id_list(raw: Any) -> list[str]:
    if isinstance(raw, str):
        items = [raw]
    elif isinstance(raw, list):
        items = [str(item) for item in raw if item is not None]
    else:
        return []
    return list(dict.fromkeys(item.strip() for item in items if item.strip()))


def _text(raw: Any) -> str | None:
    if raw is None:
        return None
    return str(raw)


def _plain(value: Any) -> Any:
    if isinstance(value, TaskStatus):
        return value.value
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value
