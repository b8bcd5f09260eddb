"""Typed state contract for the stage dispatch graph."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TypedDict

from queue_orchestrator.agent.runner import AgentRunner
from queue_orchestrator.agent.transcript import TranscriptLog
from queue_orchestrator.config.settings import MergeMode
from queue_orchestrator.executor.base import EnvironmentHandle
from queue_orchestrator.prompts.loader import PromptLoader
from queue_orchestrator.storage.base import TaskStore
from queue_orchestrator.storage.models import Task, WorkResult
from queue_orchestrator.workflow.status import TaskStatus


@dataclass
class StageRuntime:
    """Collaborators and environment facts shared by every stage of one dispatch."""

    store: TaskStore
    runner: AgentRunner
    prompts: PromptLoader
    handle: EnvironmentHandle
    repo_dir: str
    branch: str
    logs_dir: Path
    merge_mode: MergeMode = "pr"
    max_stages: int = 10
    agent_model: str = ""
    preview_urls: dict[int, str] | None = None


class StageState(TypedDict, total=False):
    runtime: StageRuntime
    task: Task
    all_tasks: list[Task]
    stage_count: int
    actionable_status: TaskStatus
    prompt: str
    transcript: str
    log: TranscriptLog
    result: WorkResult | None
    outcome: str
    preview_reported: bool


def initial_state(runtime: StageRuntime, task: Task, all_tasks: list[Task]) -> StageState:
    return {
        "runtime": runtime,
        "task": task,
        "all_tasks": all_tasks,
        "stage_count": 0,
        "result": None,
        "outcome": "",
        "preview_reported": False,
    }
