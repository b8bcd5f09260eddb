"""Parse node: read the completion block out of the stage transcript."""

from __future__ import annotations

import logging

from queue_orchestrator.graph.state import StageState
from queue_orchestrator.parsing.work_result import parse_work_result
from queue_orchestrator.workflow.status import TaskStatus

logger = logging.getLogger(__name__)


async def run(state: StageState) -> StageState:
    task = state["task"]
    result = parse_work_result(state.get("transcript", ""))
    if result is not None:
        return {"result": result}

    # No retry: a stage that produced no report needs a human to look at it.
    logger.warning("dispatch event=parse_failure task_id=%s action=block", task.task_id)
    await state["runtime"].store.update_status(task, TaskStatus.BLOCKED)
    log = state.get("log")
    if log is not None:
        log.append("No WORK_RESULT block found in agent output")
        log.finish()
    return {"result": None, "outcome": "parse_failure"}
