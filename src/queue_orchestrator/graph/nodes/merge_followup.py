"""Merge node: ask the agent to deliver the branch when the stage did not."""

from __future__ import annotations

import logging

from queue_orchestrator.errors import OrchestratorError
from queue_orchestrator.graph.prompting import build_merge_prompt, wants_merge
from queue_orchestrator.graph.state import StageState
from queue_orchestrator.parsing.work_result import parse_work_result
from queue_orchestrator.workflow.status import TaskStatus

logger = logging.getLogger(__name__)


async def run(state: StageState) -> StageState:
    result = state.get("result")
    if result is None or not result.success or result.merge_status:
        return {}

    runtime = state["runtime"]
    task = state["task"]
    all_tasks = state.get("all_tasks", [])
    if not wants_merge(state["actionable_status"], task, all_tasks):
        return {}

    logger.info("dispatch event=merge_followup task_id=%s mode=%s", task.task_id, runtime.merge_mode)
    log = state.get("log")
    prompt = build_merge_prompt(runtime, task, all_tasks, result.preview_url)
    if log is not None:
        log.section("MERGE PROMPT SENT TO AGENT", prompt)

    # The stage's code is already committed; only delivery is in doubt, so a
    # failed follow-up never discards the stage record.
    try:
        transcript = await runtime.runner.run(
            runtime.handle,
            prompt,
            working_dir=runtime.repo_dir,
            label=f"{task.task_id}:merge",
            log=log,
        )
    except OrchestratorError as exc:
        logger.warning(
            "dispatch event=merge_failed task_id=%s error=%s note=pull request may not exist",
            task.task_id,
            exc,
        )
        return {}

    merge_result = parse_work_result(transcript)
    if merge_result is None:
        logger.warning(
            "dispatch event=merge_no_result task_id=%s note=pull request may not exist",
            task.task_id,
        )
        return {}

    update = {
        field: getattr(merge_result, field)
        for field in ("merge_status", "pr_url", "next_status")
        if getattr(merge_result, field) is not None
    }
    if not merge_result.success and merge_result.merge_status is not None:
        # A reported delivery failure (e.g. a conflict) needs a person to resolve it.
        update.setdefault("next_status", TaskStatus.NEEDS_HUMAN_DECISION)
        if merge_result.error is not None:
            update["error"] = merge_result.error

    logger.info(
        "dispatch event=merge_result task_id=%s success=%s merge_status=%s pr_url=%s",
        task.task_id,
        merge_result.success,
        merge_result.merge_status,
        merge_result.pr_url,
    )
    return {"result": result.model_copy(update=update)}
