"""Task and completion-record models shared by storage, parser, and dispatcher."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from queue_orchestrator.workflow.status import TaskStatus


class Task(BaseModel):
    """One task document, as loaded from the queue."""

    model_config = ConfigDict(validate_assignment=True)

    task_id: str
    title: str = ""
    description: str = ""
    repo: str = ""
    status: TaskStatus
    depends_on: list[str] = Field(default_factory=list)
    group: str | None = None
    variant_hint: str | None = None
    artifacts: dict[str, str] = Field(default_factory=dict)
    branch_name: str | None = None
    commit_hash: str | None = None
    merge_status: str | None = None
    pr_url: str | None = None
    preview_url: str | None = None
    last_summary: str | None = None
    last_error: str | None = None
    # Where the task came from; not part of the persisted metadata.
    source_path: Path | None = Field(default=None, exclude=True)

    def branch(self, prefix: str = "agent") -> str:
        """Working branch; tasks sharing a group share one branch."""
        return f"{prefix}/{self.group}" if self.group else f"{prefix}/{self.task_id}"


class WorkResult(BaseModel):
    """Outcome of one agent invocation, parsed from its transcript.

    A field left as None was absent from the report and must not overwrite
    anything already persisted on the task.
    """

    success: bool = False
    stage_completed: str | None = None
    next_status: TaskStatus | None = None
    branch_name: str | None = None
    commit_hash: str | None = None
    merge_status: str | None = None
    pr_url: str | None = None
    preview_url: str | None = None
    artifact_path: str | None = None
    summary: str | None = None
    error: str | None = None


# WorkResult field -> task document key
RESULT_DOCUMENT_FIELDS: dict[str, str] = {
    "branch_name": "branch_name",
    "commit_hash": "commit_hash",
    "merge_status": "merge_status",
    "pr_url": "pr_url",
    "preview_url": "preview_url",
    "summary": "last_summary",
    "error": "last_error",
}
