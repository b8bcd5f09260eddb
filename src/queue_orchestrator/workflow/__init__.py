"""Task status machine."""

from queue_orchestrator.workflow.status import (
    TaskStatus,
    in_progress_status,
    is_actionable,
    is_code_producing,
    is_in_progress,
    is_intervention,
    is_resting,
    is_terminal,
    resolve_status,
    resolve_status_token,
    stage_key,
    stage_name,
)

__all__ = [
    "TaskStatus",
    "in_progress_status",
    "is_actionable",
    "is_code_producing",
    "is_in_progress",
    "is_intervention",
    "is_resting",
    "is_terminal",
    "resolve_status",
    "resolve_status_token",
    "stage_key",
    "stage_name",
]
