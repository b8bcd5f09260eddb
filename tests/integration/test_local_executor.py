from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path

import pytest

from queue_orchestrator.agent.runner import AgentRunner
from queue_orchestrator.executor.base import EnvironmentSpec
from queue_orchestrator.executor.local import LocalExecutor
from queue_orchestrator.parsing.work_result import parse_work_result
from queue_orchestrator.workflow.status import TaskStatus

pytestmark = pytest.mark.skipif(shutil.which("bash") is None, reason="bash is not available")


def _fake_agent(tmp_path: Path) -> Path:
    event = {
        "type": "result",
        "subtype": "success",
        "result": "Done.\nWORK_RESULT:\n  success: true\n  next_status: Needs Plan\n",
    }
    script = tmp_path / "fake-agent"
    script.write_text(f"#!/bin/sh\nprintf '%s\\n' '{json.dumps(event)}'\n", encoding="utf-8")
    script.chmod(0o755)
    return script


def test_local_executor_runs_commands_in_environment(tmp_path: Path) -> None:
    executor = LocalExecutor(base_dir=str(tmp_path))

    async def _run():
        handle = await executor.provision(EnvironmentSpec(label="AGI-1", env={"TASK_ID": "AGI-1"}))
        result = await executor.run(handle, 'echo "$TASK_ID in $HOME"')
        failed = await executor.run(handle, "exit 3")
        await executor.teardown(handle)
        return handle, result, failed

    handle, result, failed = asyncio.run(_run())

    assert result.ok
    assert result.output.strip() == f"AGI-1 in {handle.home_dir}"
    assert failed.exit_code == 3
    assert not Path(handle.home_dir).exists()


def test_agent_runner_against_local_shell(tmp_path: Path) -> None:
    executor = LocalExecutor(base_dir=str(tmp_path))
    runner = AgentRunner(executor, command=str(_fake_agent(tmp_path)), timeout_s=10)

    async def _run():
        handle = await executor.provision(EnvironmentSpec(label="AGI-1"))
        try:
            return await runner.run(
                handle, "research the task", working_dir=handle.home_dir, label="AGI-1"
            )
        finally:
            await executor.teardown(handle)

    transcript = asyncio.run(_run())
    result = parse_work_result(transcript)

    assert result is not None
    assert result.success is True
    assert result.next_status == TaskStatus.NEEDS_PLAN


def test_agent_crash_without_output_returns_empty_transcript(tmp_path: Path) -> None:
    script = tmp_path / "crashing-agent"
    script.write_text("#!/bin/sh\necho 'auth failed' >&2\nexit 1\n", encoding="utf-8")
    script.chmod(0o755)
    executor = LocalExecutor(base_dir=str(tmp_path))
    runner = AgentRunner(executor, command=str(script), timeout_s=10)

    async def _run():
        handle = await executor.provision(EnvironmentSpec(label="AGI-1"))
        try:
            return await runner.run(
                handle, "research the task", working_dir=handle.home_dir, label="AGI-1"
            )
        finally:
            await executor.teardown(handle)

    transcript = asyncio.run(_run())

    assert transcript == ""
    assert parse_work_result(transcript) is None
