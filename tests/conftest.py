from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from queue_orchestrator.agent.runner import AgentRunner
from queue_orchestrator.config.settings import Settings
from queue_orchestrator.dispatcher import StageDispatcher
from queue_orchestrator.errors import ExecutionFault
from queue_orchestrator.executor.base import CommandResult, EnvironmentHandle, EnvironmentSpec
from queue_orchestrator.prompts.loader import PromptLoader
from queue_orchestrator.storage.memory import InMemoryTaskStore


def work_result(**fields: str) -> str:
    """Agent narration ending in a completion block with the given fields."""
    lines = ["All done here.", "", "WORK_RESULT:"]
    for key, value in fields.items():
        if "\n" in value:
            lines.append(f"  {key}: |")
            lines.extend(f"    {line}" for line in value.splitlines())
        else:
            lines.append(f"  {key}: {value}")
    return "\n".join(lines) + "\n"


class FakeSession:
    """Replays the next scripted transcript as stream-json when a command is sent."""

    def __init__(self, executor: FakeExecutor, on_output: Callable[[str], None]) -> None:
        self.executor = executor
        self.on_output = on_output
        self.closed = False

    async def await_ready(self) -> None:
        return None

    async def send(self, data: str) -> None:
        self.executor.sent.append(data)
        if not self.executor.replies:
            if self.executor.silent_when_empty:
                return
            raise ExecutionFault("No scripted agent reply left")
        reply = self.executor.replies.pop(0)
        assistant = {
            "type": "assistant",
            "message": {"content": [{"type": "text", "text": reply}]},
        }
        self.on_output("\x1b[0m" + json.dumps(assistant) + "\n")
        self.on_output(json.dumps({"type": "result", "subtype": "success", "result": ""}) + "\n")

    async def close(self) -> None:
        self.closed = True


class FakeExecutor:
    """Executor double: records every call and scripts agent replies in order."""

    def __init__(self, replies: list[str] | None = None) -> None:
        self.replies = list(replies or [])
        self.sent: list[str] = []
        self.commands: list[str] = []
        self.provisioned: list[EnvironmentSpec] = []
        self.torn_down: list[str] = []
        self.sessions: list[FakeSession] = []
        self.fail_on: str | None = None
        self.unpublishable_ports: set[int] = set()
        self.silent_when_empty = False

    async def provision(self, spec: EnvironmentSpec) -> EnvironmentHandle:
        self.provisioned.append(spec)
        number = len(self.provisioned)
        return EnvironmentHandle(environment_id=f"env-{number}", home_dir=f"/home/fake-{number}")

    async def run(
        self,
        handle: EnvironmentHandle,
        command: str,
        working_dir: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        self.commands.append(command)
        if self.fail_on and self.fail_on in command:
            return CommandResult(exit_code=128, output=f"fatal: {self.fail_on}")
        return CommandResult(exit_code=0, output="")

    async def open_interactive_session(
        self,
        handle: EnvironmentHandle,
        *,
        working_dir: str,
        env: dict[str, str],
        on_output: Callable[[str], None],
    ) -> FakeSession:
        session = FakeSession(self, on_output)
        self.sessions.append(session)
        return session

    async def publish(self, handle: EnvironmentHandle, port: int, ttl_s: int) -> str:
        if port in self.unpublishable_ports:
            raise ExecutionFault(f"port {port} cannot be published")
        return f"https://{port}-abc.example"

    async def teardown(self, handle: EnvironmentHandle) -> None:
        self.torn_down.append(handle.environment_id)


@pytest.fixture
def result_block() -> Callable[..., str]:
    return work_result


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        queue_dir=tmp_path / "queue",
        logs_dir=tmp_path / "logs",
        poll_interval_s=0.0,
        anthropic_api_key="test-key",
        github_token="test-token",
    )


@pytest.fixture
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def make_dispatcher(
    store: InMemoryTaskStore, executor: FakeExecutor, settings: Settings
) -> Callable[..., StageDispatcher]:
    def _make(**overrides: object) -> StageDispatcher:
        effective = settings.model_copy(update=overrides) if overrides else settings
        runner = AgentRunner(executor, model=effective.agent_model, timeout_s=5)
        return StageDispatcher(store, executor, runner, PromptLoader(), effective)

    return _make
