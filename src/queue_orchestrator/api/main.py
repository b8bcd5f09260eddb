"""FastAPI app entrypoint for queue-orchestrator."""

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from queue_orchestrator.config.settings import Settings, get_settings
from queue_orchestrator.scheduler import filter_eligible
from queue_orchestrator.storage.base import TaskStore
from queue_orchestrator.storage.markdown import MarkdownTaskStore
from queue_orchestrator.storage.models import Task
from queue_orchestrator.workflow.status import TaskStatus, is_actionable


class TaskListResponse(BaseModel):
    tasks: list[Task]


class StatusResetRequest(BaseModel):
    status: TaskStatus


def create_app(
    *,
    store: TaskStore | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.store = store or MarkdownTaskStore(settings.queue_dir, id_prefix=settings.id_prefix)

    def _get_store(request: Request) -> TaskStore:
        return request.app.state.store

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tasks", response_model=TaskListResponse)
    async def list_tasks(request: Request) -> TaskListResponse:
        return TaskListResponse(tasks=await _get_store(request).load_all())

    @app.get("/tasks/eligible", response_model=TaskListResponse)
    async def eligible_tasks(request: Request) -> TaskListResponse:
        all_tasks = await _get_store(request).load_all()
        return TaskListResponse(tasks=filter_eligible(all_tasks, set()))

    @app.get("/tasks/{task_id}", response_model=Task)
    async def get_task(task_id: str, request: Request) -> Task:
        task = await _get_store(request).get(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    @app.post("/tasks/{task_id}/status", response_model=Task)
    async def reset_status(task_id: str, payload: StatusResetRequest, request: Request) -> Task:
        """Put a task back into the queue after a human has looked at it."""
        if not is_actionable(payload.status):
            raise HTTPException(
                status_code=400,
                detail=f"Status {payload.status.value!r} is not actionable",
            )
        task_store = _get_store(request)
        task = await task_store.get(task_id)
        if task is None:
            raise HTTPException(status_code=404, detail="Task not found")
        await task_store.update_status(task, payload.status)
        return task

    return app
