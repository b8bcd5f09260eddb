"""Task storage backends and models."""

from queue_orchestrator.storage.base import TaskStore
from queue_orchestrator.storage.markdown import MarkdownTaskStore
from queue_orchestrator.storage.memory import InMemoryTaskStore
from queue_orchestrator.storage.models import Task, WorkResult

__all__ = [
    "InMemoryTaskStore",
    "MarkdownTaskStore",
    "Task",
    "TaskStore",
    "WorkResult",
]
