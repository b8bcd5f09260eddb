"""Contract for the execution environments agents run in.

The orchestrator only depends on these protocols. Provisioning, tooling
installation and lifecycle details belong to the concrete executor.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from pydantic import BaseModel, Field


class EnvironmentSpec(BaseModel):
    """What to provision for one task dispatch."""

    label: str
    image: str | None = None
    cpu: int = Field(default=2, ge=1)
    memory_gb: int = Field(default=4, ge=1)
    disk_gb: int = Field(default=8, ge=1)
    env: dict[str, str] = Field(default_factory=dict)


class EnvironmentHandle(BaseModel):
    """Opaque reference to a provisioned environment."""

    environment_id: str
    home_dir: str
    details: dict[str, Any] = Field(default_factory=dict)


class CommandResult(BaseModel):
    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class InteractiveSession(Protocol):
    async def await_ready(self) -> None: ...

    async def send(self, data: str) -> None: ...

    async def close(self) -> None: ...


class Executor(Protocol):
    async def provision(self, spec: EnvironmentSpec) -> EnvironmentHandle: ...

    async def run(
        self,
        handle: EnvironmentHandle,
        command: str,
        working_dir: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult: ...

    async def open_interactive_session(
        self,
        handle: EnvironmentHandle,
        *,
        working_dir: str,
        env: dict[str, str],
        on_output: Callable[[str], None],
    ) -> InteractiveSession: ...

    async def publish(self, handle: EnvironmentHandle, port: int, ttl_s: int) -> str: ...

    async def teardown(self, handle: EnvironmentHandle) -> None: ...
