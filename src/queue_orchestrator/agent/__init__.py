"""Coding agent invocation."""

from queue_orchestrator.agent.runner import AgentRunner
from queue_orchestrator.agent.transcript import TranscriptLog

__all__ = ["AgentRunner", "TranscriptLog"]
