"""Persist node: fix the preview address, write the record, and settle the next status."""

from __future__ import annotations

import logging

from queue_orchestrator.environment import resolve_preview_url
from queue_orchestrator.errors import OrchestratorError
from queue_orchestrator.graph.state import StageState
from queue_orchestrator.workflow.status import TaskStatus, is_actionable

logger = logging.getLogger(__name__)

MALFORMED_REPORT_ERROR = "Agent reported success without a next_status"


async def run(state: StageState) -> StageState:
    runtime = state["runtime"]
    task = state["task"]
    result = state.get("result")
    if result is None:
        raise OrchestratorError("persist_result reached without a parsed result")

    if result.preview_url:
        corrected = resolve_preview_url(result.preview_url, runtime.preview_urls or {})
        if corrected != result.preview_url:
            result = result.model_copy(update={"preview_url": corrected})

    if result.next_status is None and result.success:
        # Malformed report; recorded as the error so the block has a reason.
        result = result.model_copy(update={"error": result.error or MALFORMED_REPORT_ERROR})

    await runtime.store.write_result(task, result)

    if result.next_status is not None:
        next_status = result.next_status
        outcome = "advanced" if is_actionable(next_status) else "rested"
    elif not result.success:
        next_status = TaskStatus.BLOCKED
        outcome = "reported_failure"
    else:
        next_status = TaskStatus.BLOCKED
        outcome = "malformed_report"
    await runtime.store.update_status(task, next_status)

    logger.info(
        "dispatch event=stage_done task_id=%s stage=%s success=%s status=%s outcome=%s",
        task.task_id,
        state["actionable_status"].value,
        result.success,
        next_status.value,
        outcome,
    )
    log = state.get("log")
    if log is not None:
        log.finish()

    return {
        "result": result,
        "outcome": outcome,
        "preview_reported": state.get("preview_reported", False) or bool(result.preview_url),
    }
