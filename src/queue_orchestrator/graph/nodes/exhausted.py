"""Exhausted node: the stage cap ran out while the task still wanted another stage."""

from __future__ import annotations

import logging

from queue_orchestrator.graph.state import StageState
from queue_orchestrator.workflow.status import TaskStatus

logger = logging.getLogger(__name__)


async def run(state: StageState) -> StageState:
    task = state["task"]
    logger.warning(
        "dispatch event=stage_cap_reached task_id=%s stages=%s status=%s action=block",
        task.task_id,
        state.get("stage_count", 0),
        task.status.value,
    )
    await state["runtime"].store.update_status(task, TaskStatus.BLOCKED)
    return {"outcome": "iteration_exhausted"}
