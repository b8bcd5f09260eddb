"""Dependency-aware scheduling of queued tasks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal, Protocol

from queue_orchestrator.storage.base import TaskStore
from queue_orchestrator.storage.models import Task
from queue_orchestrator.workflow.status import (
    is_actionable,
    is_in_progress,
    is_intervention,
    is_resting,
    is_terminal,
)

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    async def dispatch(self, task: Task, all_tasks: list[Task]) -> object: ...


def filter_eligible(all_tasks: list[Task], active_ids: Iterable[str]) -> list[Task]:
    """Tasks that may be dispatched now, in queue order.

    A dependency id that matches no known task counts as satisfied.
    """
    active = set(active_ids)
    by_id = {task.task_id: task for task in all_tasks}

    def _dependencies_met(task: Task) -> bool:
        for dep_id in task.depends_on:
            dep = by_id.get(dep_id)
            if dep is not None and not is_terminal(dep.status):
                return False
        return True

    return [
        task
        for task in all_tasks
        if is_actionable(task.status)
        and task.task_id not in active
        and not is_intervention(task.status)
        and _dependencies_met(task)
    ]


def is_terminal_task(task: Task, all_tasks: list[Task]) -> bool:
    """True when no unfinished task depends on this one."""
    return not any(
        other.task_id != task.task_id
        and not is_resting(other.status)
        and task.task_id in other.depends_on
        for other in all_tasks
    )


@dataclass
class SchedulerReport:
    cycles: int = 0
    dispatched: list[str] = field(default_factory=list)
    stop_reason: str = ""


class QueueScheduler:
    """Poll the store and dispatch eligible tasks up to a concurrency bound.

    In `batch` mode each cycle waits for the tasks it dispatched. In `rolling`
    mode dispatches keep running while the loop polls for new work. Stopping
    never interrupts a dispatch that is already running.
    """

    def __init__(
        self,
        store: TaskStore,
        dispatcher: Dispatcher,
        *,
        max_concurrency: int = 1,
        poll_interval_s: float = 5.0,
        max_iterations: int | None = None,
        mode: Literal["batch", "rolling"] = "batch",
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.max_concurrency = max_concurrency
        self.poll_interval_s = poll_interval_s
        self.max_iterations = max_iterations
        self.mode = mode
        self.active_ids: set[str] = set()
        self._running: dict[str, asyncio.Task[None]] = {}
        self._stop = asyncio.Event()

    def request_stop(self) -> None:
        logger.info("scheduler event=stop_requested active=%s", sorted(self.active_ids))
        self._stop.set()

    async def run(self) -> SchedulerReport:
        report = SchedulerReport()
        try:
            while True:
                if self._stop.is_set():
                    report.stop_reason = "stop_requested"
                    break
                if self.max_iterations is not None and report.cycles >= self.max_iterations:
                    report.stop_reason = "max_iterations"
                    break
                report.cycles += 1

                all_tasks = await self.store.load_all()
                eligible = filter_eligible(all_tasks, self.active_ids)
                capacity = self.max_concurrency - len(self.active_ids)

                if not eligible or capacity <= 0:
                    busy = bool(self._running) or any(is_in_progress(t.status) for t in all_tasks)
                    if not eligible and not busy:
                        logger.info("scheduler event=idle action=stop")
                        report.stop_reason = "idle"
                        break
                    logger.info(
                        "scheduler event=waiting eligible=%s active=%s",
                        len(eligible),
                        len(self.active_ids),
                    )
                    await self._wait()
                    continue

                batch = eligible[:capacity]
                for task in batch:
                    self._start(task, all_tasks)
                    report.dispatched.append(task.task_id)

                if self.mode == "batch":
                    await asyncio.gather(*(self._running[t.task_id] for t in batch))
        finally:
            if self._running:
                logger.info("scheduler event=draining active=%s", sorted(self._running))
                await asyncio.gather(*self._running.values())
        logger.info(
            "scheduler event=stopped reason=%s cycles=%s dispatched=%s",
            report.stop_reason,
            report.cycles,
            len(report.dispatched),
        )
        return report

    def _start(self, task: Task, all_tasks: list[Task]) -> None:
        # Claimed synchronously, before the first await, so no cycle can pick it twice.
        self.active_ids.add(task.task_id)
        logger.info("scheduler event=dispatch task_id=%s status=%s", task.task_id, task.status)
        self._running[task.task_id] = asyncio.create_task(self._guarded(task, all_tasks))

    async def _guarded(self, task: Task, all_tasks: list[Task]) -> None:
        try:
            await self.dispatcher.dispatch(task, all_tasks)
        except Exception:  # noqa: BLE001
            logger.exception("scheduler event=dispatch_crashed task_id=%s", task.task_id)
        finally:
            self.active_ids.discard(task.task_id)
            self._running.pop(task.task_id, None)

    async def _wait(self) -> None:
        """Sleep one poll interval, waking early on stop or on a finished dispatch."""
        timers = [
            asyncio.ensure_future(asyncio.sleep(self.poll_interval_s)),
            asyncio.ensure_future(self._stop.wait()),
        ]
        try:
            await asyncio.wait(
                [*timers, *self._running.values()], return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for timer in timers:
                timer.cancel()
