"""Assemble the prompts sent to the agent for a stage and for the merge follow-up."""

from __future__ import annotations

from queue_orchestrator.graph.state import StageRuntime
from queue_orchestrator.prompts.loader import merge_fragment_name
from queue_orchestrator.scheduler import is_terminal_task
from queue_orchestrator.storage.models import Task
from queue_orchestrator.workflow.status import TaskStatus, is_code_producing, stage_key, stage_name


def wants_merge(status: TaskStatus, task: Task, all_tasks: list[Task]) -> bool:
    """Code-producing stage of a task nothing else is still waiting on."""
    return is_code_producing(status) and is_terminal_task(task, all_tasks)


def build_stage_prompt(
    runtime: StageRuntime, task: Task, all_tasks: list[Task], status: TaskStatus
) -> str:
    variables = _common_variables(runtime, task)
    variables["STAGE"] = stage_name(status)
    variables["MERGE_INSTRUCTIONS"] = (
        _merge_fragment(runtime, task, all_tasks) if wants_merge(status, task, all_tasks) else ""
    )
    body = runtime.prompts.load_and_fill(stage_key(status), variables)
    return _task_context(task, runtime.branch, status) + body


def build_merge_prompt(
    runtime: StageRuntime, task: Task, all_tasks: list[Task], preview_url: str | None
) -> str:
    variables = _common_variables(runtime, task)
    variables["PREVIEW_URL"] = preview_url or "N/A - no web server"
    variables["MERGE_INSTRUCTIONS"] = _merge_fragment(
        runtime, task, all_tasks, preview_url=preview_url
    )
    return runtime.prompts.load_and_fill("merge-only", variables)


def _merge_fragment(
    runtime: StageRuntime, task: Task, all_tasks: list[Task], *, preview_url: str | None = None
) -> str:
    name = merge_fragment_name(runtime.merge_mode, terminal=is_terminal_task(task, all_tasks))
    variables = _common_variables(runtime, task)
    variables["PREVIEW_URL"] = preview_url or "N/A - no web server"
    return runtime.prompts.load_and_fill(name, variables)


def _common_variables(runtime: StageRuntime, task: Task) -> dict[str, str]:
    previews = runtime.preview_urls or {}
    return {
        "TASK_ID": task.task_id,
        "BRANCH": runtime.branch,
        "ARTIFACT_DIR": f"agent-docs/{task.task_id}",
        "AGENT_MODEL": runtime.agent_model,
        "PREVIEW_URLS": "\n".join(
            f"- Port {port}: {url}" for port, url in sorted(previews.items())
        )
        or "- none",
    }


def _task_context(task: Task, branch: str, status: TaskStatus) -> str:
    lines = [
        "## Task Context",
        "",
        f"**Task ID**: {task.task_id}",
        f"**Title**: {task.title}",
        f"**Description**: {task.description}",
        f"**Repo**: {task.repo}",
        f"**Branch**: {branch}",
        f"**Stage**: {status.value}",
    ]
    if task.variant_hint:
        lines.append(f"**Variant Hint**: {task.variant_hint}")
    if task.artifacts:
        lines.append("**Existing Artifacts**:")
        lines.extend(f"  - {stage}: {path}" for stage, path in task.artifacts.items())
    lines.extend(["", "---", "", ""])
    return "\n".join(lines)
