"""Prompt template loading and `{{VAR}}` substitution."""

from __future__ import annotations

import re
from pathlib import Path

from queue_orchestrator.config.settings import MergeMode
from queue_orchestrator.errors import PromptNotFoundError
from queue_orchestrator.prompts.templates import DEFAULT_TEMPLATES

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


class PromptLoader:
    """Loads `<name>.md` from an override directory, else the built-in template."""

    def __init__(self, prompts_dir: Path | None = None) -> None:
        self.prompts_dir = prompts_dir

    def load(self, name: str) -> str:
        if self.prompts_dir is not None:
            path = self.prompts_dir / f"{name}.md"
            if path.is_file():
                return path.read_text(encoding="utf-8")
        try:
            return DEFAULT_TEMPLATES[name]
        except KeyError:
            raise PromptNotFoundError(f"Unknown prompt template: {name}") from None

    @staticmethod
    def fill(template: str, variables: dict[str, str]) -> str:
        """Replace known placeholders; unknown ones are left in place."""
        return _PLACEHOLDER_RE.sub(
            lambda match: variables.get(match.group(1), match.group(0)), template
        )

    def load_and_fill(self, name: str, variables: dict[str, str]) -> str:
        return self.fill(self.load(name), variables)


def merge_fragment_name(mode: MergeMode, *, terminal: bool) -> str:
    if mode == "auto":
        return "merge-pr" if terminal else "merge-direct"
    return f"merge-{mode}"
