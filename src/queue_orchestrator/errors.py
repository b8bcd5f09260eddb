"""Exception types raised by the orchestrator."""

from __future__ import annotations


class OrchestratorError(RuntimeError):
    """Base class for orchestrator failures."""


class StatusTransitionError(OrchestratorError):
    """A status was used where the closed transition tables have no entry."""


class TaskDocumentError(OrchestratorError):
    """A task document could not be read, parsed, or written."""


class ExecutionFault(OrchestratorError):
    """The execution environment or an agent invocation failed."""


class PromptNotFoundError(OrchestratorError):
    """A prompt template is missing from both the override directory and the defaults."""
