"""Per-stage transcript log files."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from pathlib import Path


class TranscriptLog:
    """Append-only log of one stage: header, prompt, raw agent events."""

    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def for_stage(cls, logs_dir: Path, task_id: str, stage: str) -> TranscriptLog:
        slug = re.sub(r"[^a-z0-9]+", "-", stage.lower()).strip("-") or "stage"
        return cls(logs_dir / task_id / f"stage-{slug}.log")

    def start(self, **header: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lines = ["=== Agent Log ==="]
        lines.extend(f"{key.replace('_', ' ').title()}: {value}" for key, value in header.items())
        lines.append(f"Started: {_now()}")
        lines.append("===\n\n")
        self.path.write_text("\n".join(lines), encoding="utf-8")

    def section(self, title: str, body: str) -> None:
        self.append(f"=== {title} ===\n\n{body}\n\n{'=' * 60}\n")

    def append(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(text if text.endswith("\n") else text + "\n")

    def finish(self) -> None:
        self.append(f"\n=== Stage finished: {_now()} ===")


def _now() -> str:
    return datetime.now(UTC).isoformat()
