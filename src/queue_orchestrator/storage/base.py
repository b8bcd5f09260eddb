"""Storage interface for the task queue."""

from __future__ import annotations

from typing import Protocol

from queue_orchestrator.storage.models import Task, WorkResult
from queue_orchestrator.workflow.status import TaskStatus


class TaskStore(Protocol):
    async def load_all(self) -> list[Task]: ...

    async def get(self, task_id: str) -> Task | None: ...

    async def update_status(self, task: Task, status: TaskStatus) -> None: ...

    async def write_result(self, task: Task, result: WorkResult) -> None: ...
