"""Stage dispatcher: run one task's stages inside a single provisioned environment."""

from __future__ import annotations

import logging

from queue_orchestrator.agent.runner import AgentRunner
from queue_orchestrator.config.settings import Settings
from queue_orchestrator.environment import prepare_environment
from queue_orchestrator.executor.base import EnvironmentHandle, EnvironmentSpec, Executor
from queue_orchestrator.executor.local import LocalExecutor
from queue_orchestrator.graph.state import StageRuntime, initial_state
from queue_orchestrator.graph.workflow import build_stage_graph, recursion_limit
from queue_orchestrator.prompts.loader import PromptLoader
from queue_orchestrator.storage.base import TaskStore
from queue_orchestrator.storage.models import Task, WorkResult
from queue_orchestrator.workflow.status import TaskStatus

logger = logging.getLogger(__name__)


class StageDispatcher:
    """Provision, prepare, run the stage graph, and tear down for one task at a time.

    Any failure is contained to the task being dispatched: it is marked
    Blocked with the error recorded, and `dispatch` returns normally.
    """

    def __init__(
        self,
        store: TaskStore,
        executor: Executor,
        runner: AgentRunner,
        prompts: PromptLoader,
        settings: Settings,
    ) -> None:
        self.store = store
        self.executor = executor
        self.runner = runner
        self.prompts = prompts
        self.settings = settings
        self._graph = build_stage_graph(max_stages=settings.max_stages)

    async def dispatch(self, task: Task, all_tasks: list[Task]) -> str:
        """Drive `task` until it rests; return the final stage outcome."""
        handle: EnvironmentHandle | None = None
        keep_alive = False
        outcome = "execution_fault"
        try:
            handle = await self.executor.provision(
                EnvironmentSpec(label=task.task_id, env={"TASK_ID": task.task_id})
            )
            logger.info(
                "dispatch event=provisioned task_id=%s environment_id=%s",
                task.task_id,
                handle.environment_id,
            )
            repo_dir = f"{handle.home_dir}/{self.settings.repo_dir}"
            branch = task.branch(self.settings.branch_prefix)
            preview_urls = await prepare_environment(
                self.executor,
                handle,
                repo=task.repo,
                repo_dir=repo_dir,
                branch=branch,
                agent_command=self.settings.agent_command,
                github_token=self.settings.resolved_github_token(),
                preview_ports=self.settings.preview_ports,
                preview_ttl_s=self.settings.preview_ttl_s,
                label=task.task_id,
            )

            runtime = StageRuntime(
                store=self.store,
                runner=self.runner,
                prompts=self.prompts,
                handle=handle,
                repo_dir=repo_dir,
                branch=branch,
                logs_dir=self.settings.logs_dir,
                merge_mode=self.settings.merge_mode,
                max_stages=self.settings.max_stages,
                agent_model=self.settings.agent_model,
                preview_urls=preview_urls,
            )
            final_state = await self._graph.ainvoke(
                initial_state(runtime, task, all_tasks),
                config={"recursion_limit": recursion_limit(self.settings.max_stages)},
            )
            outcome = final_state.get("outcome", "")
            keep_alive = bool(final_state.get("preview_reported"))
        except Exception as exc:  # noqa: BLE001
            logger.exception("dispatch event=execution_fault task_id=%s", task.task_id)
            await self._block(task, f"{type(exc).__name__}: {exc}")
        finally:
            if handle is not None:
                await self._release(task, handle, keep_alive)

        logger.info(
            "dispatch event=finished task_id=%s status=%s outcome=%s",
            task.task_id,
            task.status.value,
            outcome,
        )
        return outcome

    async def _block(self, task: Task, error: str) -> None:
        try:
            await self.store.write_result(task, WorkResult(error=error))
            await self.store.update_status(task, TaskStatus.BLOCKED)
        except Exception:  # noqa: BLE001
            logger.exception("dispatch event=block_failed task_id=%s", task.task_id)

    async def _release(self, task: Task, handle: EnvironmentHandle, keep_alive: bool) -> None:
        if keep_alive:
            # A reported preview is only reachable while the environment lives.
            logger.info(
                "dispatch event=kept_alive task_id=%s environment_id=%s preview_url=%s",
                task.task_id,
                handle.environment_id,
                task.preview_url,
            )
            return
        try:
            await self.executor.teardown(handle)
        except Exception:  # noqa: BLE001
            logger.exception(
                "dispatch event=teardown_failed task_id=%s environment_id=%s",
                task.task_id,
                handle.environment_id,
            )


def build_executor(settings: Settings) -> Executor:
    if settings.executor_mode == "local":
        return LocalExecutor()
    raise ValueError(f"Unsupported executor mode: {settings.executor_mode}")


def build_dispatcher(
    settings: Settings, store: TaskStore, executor: Executor | None = None
) -> StageDispatcher:
    executor = executor or build_executor(settings)
    runner = AgentRunner(
        executor,
        command=settings.agent_command,
        model=settings.agent_model,
        api_key=settings.resolved_anthropic_api_key(),
        github_token=settings.resolved_github_token(),
        timeout_s=settings.agent_timeout_s,
    )
    return StageDispatcher(store, executor, runner, PromptLoader(settings.prompts_dir), settings)
