"""Filesystem task store: one Markdown document per task in the queue directory."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

from queue_orchestrator.errors import TaskDocumentError
from queue_orchestrator.storage.documents import (
    apply_result_to_task,
    assign_missing_ids,
    merge_result,
    render_document,
    split_document,
    task_from_metadata,
)
from queue_orchestrator.storage.models import Task, WorkResult
from queue_orchestrator.workflow.status import TaskStatus

logger = logging.getLogger(__name__)


class MarkdownTaskStore:
    """Read and write `*.md` task documents.

    Every write re-reads the document and re-serializes the full metadata, so
    the last writer wins. Only one orchestrator should own a queue directory.
    """

    def __init__(self, queue_dir: Path | str, *, id_prefix: str = "AGI") -> None:
        self.queue_dir = Path(queue_dir)
        self.id_prefix = id_prefix
        self._lock = threading.Lock()

    async def load_all(self) -> list[Task]:
        return await asyncio.to_thread(self._load_all)

    async def get(self, task_id: str) -> Task | None:
        for task in await self.load_all():
            if task.task_id == task_id:
                return task
        return None

    async def update_status(self, task: Task, status: TaskStatus) -> None:
        path = self._path_for(task)
        await asyncio.to_thread(self._rewrite, path, lambda meta: {**meta, "status": status.value})
        task.status = status

    async def write_result(self, task: Task, result: WorkResult) -> None:
        path = self._path_for(task)
        await asyncio.to_thread(self._rewrite, path, lambda meta: merge_result(meta, result))
        apply_result_to_task(task, result)

    def _load_all(self) -> list[Task]:
        if not self.queue_dir.is_dir():
            logger.warning("task_store event=missing_queue_dir path=%s", self.queue_dir)
            return []

        entries: list[tuple[Path, dict[str, Any], str]] = []
        with self._lock:
            for path in sorted(self.queue_dir.glob("*.md")):
                try:
                    metadata, body = split_document(path.read_text(encoding="utf-8"))
                except (OSError, UnicodeDecodeError, TaskDocumentError) as exc:
                    logger.warning("task_store event=unreadable path=%s error=%s", path, exc)
                    continue
                entries.append((path, metadata, body))

            assigned = assign_missing_ids([meta for _, meta, _ in entries], self.id_prefix)
            for index in assigned:
                path, metadata, body = entries[index]
                self._write(path, render_document(metadata, body))
                logger.info("task_store event=id_assigned task_id=%s path=%s", metadata["id"], path)

        tasks: list[Task] = []
        for path, metadata, _ in entries:
            task = task_from_metadata(metadata, source=path)
            if task is not None:
                tasks.append(task)
        return tasks

    def _rewrite(self, path: Path, mutate: Callable[[dict[str, Any]], dict[str, Any]]) -> None:
        with self._lock:
            try:
                metadata, body = split_document(path.read_text(encoding="utf-8"))
            except OSError as exc:
                raise TaskDocumentError(f"Cannot read task document {path}: {exc}") from exc
            self._write(path, render_document(mutate(metadata), body))

    @staticmethod
    def _write(path: Path, content: str) -> None:
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise TaskDocumentError(f"Cannot write task document {path}: {exc}") from exc

    def _path_for(self, task: Task) -> Path:
        if task.source_path is not None:
            return task.source_path
        raise TaskDocumentError(f"Task {task.task_id} was not loaded from a document")
