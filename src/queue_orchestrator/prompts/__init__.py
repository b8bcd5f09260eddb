"""Stage prompt templates."""

from queue_orchestrator.prompts.loader import PromptLoader, merge_fragment_name

__all__ = ["PromptLoader", "merge_fragment_name"]
