"""Begin-stage node: mark the task in progress and build the stage prompt."""

from __future__ import annotations

import logging

from queue_orchestrator.agent.transcript import TranscriptLog
from queue_orchestrator.graph.prompting import build_stage_prompt
from queue_orchestrator.graph.state import StageState
from queue_orchestrator.workflow.status import in_progress_status

logger = logging.getLogger(__name__)


async def run(state: StageState) -> StageState:
    runtime = state["runtime"]
    task = state["task"]
    stage_count = state.get("stage_count", 0) + 1
    actionable = task.status

    log = TranscriptLog.for_stage(runtime.logs_dir, task.task_id, actionable.value)
    log.start(
        task=task.task_id,
        title=task.title,
        stage=actionable.value,
        queue_file=str(task.source_path or ""),
    )

    # Marked before the agent starts: a crash mid-stage leaves a visible
    # in-progress task instead of one that silently gets picked up again.
    await runtime.store.update_status(task, in_progress_status(actionable))
    logger.info(
        "dispatch event=stage_start task_id=%s stage=%s iteration=%s",
        task.task_id,
        actionable.value,
        stage_count,
    )

    prompt = build_stage_prompt(runtime, task, state.get("all_tasks", []), actionable)
    log.section("PROMPT SENT TO AGENT", prompt)

    return {
        "stage_count": stage_count,
        "actionable_status": actionable,
        "prompt": prompt,
        "log": log,
        "result": None,
    }
