"""Local executor: runs each environment in a temporary directory on this machine.

Intended for development and smoke runs. It gives no isolation beyond a
separate working directory, and published ports are plain localhost addresses.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import tempfile
import uuid
from collections.abc import Callable

from queue_orchestrator.errors import ExecutionFault
from queue_orchestrator.executor.base import CommandResult, EnvironmentHandle, EnvironmentSpec

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


class LocalSession:
    """A bash process whose combined output is streamed to a callback."""

    def __init__(self, process: asyncio.subprocess.Process, on_output: Callable[[str], None]) -> None:
        self._process = process
        self._on_output = on_output
        self._reader = asyncio.create_task(self._pump())

    async def await_ready(self) -> None:
        if self._process.returncode is not None:
            raise ExecutionFault("Interactive shell exited before it became ready")

    async def send(self, data: str) -> None:
        if self._process.stdin is None or self._process.stdin.is_closing():
            raise ExecutionFault("Interactive shell is closed")
        self._process.stdin.write(data.encode("utf-8"))
        await self._process.stdin.drain()

    async def close(self) -> None:
        if self._process.stdin is not None and not self._process.stdin.is_closing():
            self._process.stdin.close()
        try:
            await asyncio.wait_for(self._process.wait(), timeout=10)
        except asyncio.TimeoutError:
            self._process.kill()
            await self._process.wait()
        with contextlib.suppress(asyncio.CancelledError):
            await self._reader

    async def _pump(self) -> None:
        assert self._process.stdout is not None
        while True:
            chunk = await self._process.stdout.read(_READ_CHUNK)
            if not chunk:
                return
            self._on_output(chunk.decode("utf-8", errors="replace"))


class LocalExecutor:
    """Executor backed by temp directories and asyncio subprocesses."""

    def __init__(self, *, base_dir: str | None = None) -> None:
        self.base_dir = base_dir
        self._env: dict[str, dict[str, str]] = {}

    async def provision(self, spec: EnvironmentSpec) -> EnvironmentHandle:
        home_dir = await asyncio.to_thread(
            tempfile.mkdtemp, prefix=f"qo-{spec.label}-", dir=self.base_dir
        )
        handle = EnvironmentHandle(environment_id=uuid.uuid4().hex[:12], home_dir=home_dir)
        self._env[handle.environment_id] = dict(spec.env)
        logger.info(
            "executor event=provisioned mode=local environment_id=%s home_dir=%s",
            handle.environment_id,
            home_dir,
        )
        return handle

    async def run(
        self,
        handle: EnvironmentHandle,
        command: str,
        working_dir: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=working_dir or handle.home_dir,
            env=self._process_env(handle, env),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        stdout, _ = await process.communicate()
        return CommandResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            output=stdout.decode("utf-8", errors="replace"),
        )

    async def open_interactive_session(
        self,
        handle: EnvironmentHandle,
        *,
        working_dir: str,
        env: dict[str, str],
        on_output: Callable[[str], None],
    ) -> LocalSession:
        process = await asyncio.create_subprocess_exec(
            "/bin/bash",
            cwd=working_dir,
            env=self._process_env(handle, env),
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        return LocalSession(process, on_output)

    async def publish(self, handle: EnvironmentHandle, port: int, ttl_s: int) -> str:
        return f"http://localhost:{port}"

    async def teardown(self, handle: EnvironmentHandle) -> None:
        self._env.pop(handle.environment_id, None)
        await asyncio.to_thread(shutil.rmtree, handle.home_dir, ignore_errors=True)
        logger.info("executor event=teardown mode=local environment_id=%s", handle.environment_id)

    def _process_env(self, handle: EnvironmentHandle, extra: dict[str, str] | None) -> dict[str, str]:
        return {
            **os.environ,
            "HOME": handle.home_dir,
            **self._env.get(handle.environment_id, {}),
            **(extra or {}),
        }
