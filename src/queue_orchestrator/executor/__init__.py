"""Execution environment contract and the local implementation."""

from queue_orchestrator.executor.base import (
    CommandResult,
    EnvironmentHandle,
    EnvironmentSpec,
    Executor,
    InteractiveSession,
)
from queue_orchestrator.executor.local import LocalExecutor

__all__ = [
    "CommandResult",
    "EnvironmentHandle",
    "EnvironmentSpec",
    "Executor",
    "InteractiveSession",
    "LocalExecutor",
]
