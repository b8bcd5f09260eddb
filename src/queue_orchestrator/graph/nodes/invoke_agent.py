"""Invoke node: run the agent for the current stage inside the shared environment."""

from __future__ import annotations

from queue_orchestrator.graph.state import StageState


async def run(state: StageState) -> StageState:
    runtime = state["runtime"]
    transcript = await runtime.runner.run(
        runtime.handle,
        state["prompt"],
        working_dir=runtime.repo_dir,
        label=state["task"].task_id,
        log=state.get("log"),
    )
    return {"transcript": transcript}
