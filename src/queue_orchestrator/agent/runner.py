"""Run the coding agent CLI inside a provisioned environment and capture its transcript."""

from __future__ import annotations

import asyncio
import logging
import shlex

from queue_orchestrator.agent.stream import (
    extract_stream_text,
    is_exit_event,
    is_result_event,
    parse_stream_line,
    strip_ansi,
)
from queue_orchestrator.agent.transcript import TranscriptLog
from queue_orchestrator.errors import ExecutionFault
from queue_orchestrator.executor.base import EnvironmentHandle, Executor

logger = logging.getLogger(__name__)

SESSION_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"
# Printed after the agent exits so a crash without a result event still ends the wait.
EXIT_SENTINEL = "; printf '\\n{\"type\":\"agent_exit\",\"exit_code\":%s}\\n' \"$?\""


class _StreamCollector:
    """Splits session output into lines and keeps the narrative text."""

    def __init__(self, log: TranscriptLog | None) -> None:
        self.log = log
        self.parts: list[str] = []
        self.finished = asyncio.Event()
        self.saw_result = False
        self.exit_code: int | None = None
        self._buffer = ""

    def feed(self, chunk: str) -> None:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        for line in lines:
            self._handle_line(line)

    def flush(self) -> None:
        if self._buffer.strip():
            self._handle_line(self._buffer)
        self._buffer = ""

    def _handle_line(self, line: str) -> None:
        stripped = strip_ansi(line).strip()
        if not stripped:
            return
        event = parse_stream_line(stripped)
        if event is None:
            self._write(f"[raw] {stripped}")
            return
        self._write(stripped)
        text = extract_stream_text(event)
        if text:
            self.parts.append(text)
        if is_result_event(event):
            self.saw_result = True
            self.finished.set()
        elif is_exit_event(event):
            self.exit_code = event.get("exit_code")
            self.finished.set()

    def _write(self, line: str) -> None:
        if self.log is not None:
            self.log.append(line)

    @property
    def transcript(self) -> str:
        return "\n".join(self.parts)


class AgentRunner:
    """Starts one non-interactive agent run per call and returns its narrative text."""

    def __init__(
        self,
        executor: Executor,
        *,
        command: str = "claude",
        model: str = "claude-sonnet-4-5",
        api_key: str = "",
        github_token: str = "",
        timeout_s: float | None = None,
    ) -> None:
        self.executor = executor
        self.command = command
        self.model = model
        self.api_key = api_key
        self.github_token = github_token
        self.timeout_s = timeout_s

    def build_command(self, prompt: str) -> str:
        return (
            f"IS_SANDBOX=1 {self.command} -p {shlex.quote(prompt)} "
            f"--dangerously-skip-permissions --output-format=stream-json "
            f"--model {shlex.quote(self.model)} --verbose"
            f"{EXIT_SENTINEL}"
        )

    async def run(
        self,
        handle: EnvironmentHandle,
        prompt: str,
        *,
        working_dir: str,
        label: str,
        log: TranscriptLog | None = None,
    ) -> str:
        collector = _StreamCollector(log)
        env = {
            "ANTHROPIC_API_KEY": self.api_key,
            "GITHUB_TOKEN": self.github_token,
            "PATH": SESSION_PATH,
        }
        logger.info("agent event=start label=%s cwd=%s model=%s", label, working_dir, self.model)
        session = await self.executor.open_interactive_session(
            handle,
            working_dir=working_dir,
            env=env,
            on_output=collector.feed,
        )
        try:
            await session.await_ready()
            await session.send(f"{self.build_command(prompt)}\n")
            # The session does not reliably close when the agent exits, so the
            # stream's result event (or the exit sentinel) is the completion signal.
            await asyncio.wait_for(collector.finished.wait(), timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            raise ExecutionFault(
                f"Agent run {label} produced no result within {self.timeout_s}s"
            ) from exc
        finally:
            await session.close()
            collector.flush()

        if not collector.saw_result:
            logger.warning(
                "agent event=exited_without_result label=%s exit_code=%s",
                label,
                collector.exit_code,
            )
        logger.info(
            "agent event=completed label=%s transcript_chars=%s", label, len(collector.transcript)
        )
        if log is not None:
            log.append("Agent session completed")
        return collector.transcript
