"""In-memory task store for tests only."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from queue_orchestrator.storage.documents import (
    apply_result_to_task,
    assign_missing_ids,
    merge_result,
    task_from_metadata,
)
from queue_orchestrator.storage.models import Task, WorkResult
from queue_orchestrator.workflow.status import TaskStatus


class InMemoryTaskStore:
    """Holds raw metadata per document name and mirrors MarkdownTaskStore semantics."""

    def __init__(self, *, id_prefix: str = "AGI") -> None:
        self.id_prefix = id_prefix
        self.documents: dict[str, dict[str, Any]] = {}
        self.status_history: list[tuple[str, TaskStatus]] = []
        self.writes = 0

    def add(self, name: str, **metadata: Any) -> None:
        self.documents[name] = {
            key: value.value if isinstance(value, TaskStatus) else value
            for key, value in metadata.items()
        }

    async def load_all(self) -> list[Task]:
        names = sorted(self.documents)
        assigned = assign_missing_ids([self.documents[name] for name in names], self.id_prefix)
        self.writes += len(assigned)

        tasks: list[Task] = []
        for name in names:
            task = task_from_metadata(dict(self.documents[name]), source=Path(name))
            if task is not None:
                tasks.append(task)
        return tasks

    async def get(self, task_id: str) -> Task | None:
        for task in await self.load_all():
            if task.task_id == task_id:
                return task
        return None

    async def update_status(self, task: Task, status: TaskStatus) -> None:
        name = self._name_for(task)
        self.documents[name] = {**self.documents[name], "status": status.value}
        self.status_history.append((task.task_id, status))
        self.writes += 1
        task.status = status

    async def write_result(self, task: Task, result: WorkResult) -> None:
        name = self._name_for(task)
        self.documents[name] = merge_result(self.documents[name], result)
        self.writes += 1
        apply_result_to_task(task, result)

    def _name_for(self, task: Task) -> str:
        if task.source_path is None or str(task.source_path) not in self.documents:
            raise KeyError(f"Task {task.task_id} does not exist")
        return str(task.source_path)
