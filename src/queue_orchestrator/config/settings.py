"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]

MergeMode = Literal["pr", "direct", "auto"]
DispatchMode = Literal["batch", "rolling"]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "queue-orchestrator"
    log_level: str = "INFO"
    queue_dir: Path = PROJECT_ROOT / "request_queue"
    logs_dir: Path = PROJECT_ROOT / "logs"
    prompts_dir: Path | None = None
    id_prefix: str = "AGI"
    branch_prefix: str = "agent"

    executor_mode: Literal["local"] = "local"
    agent_command: str = "claude"
    agent_model: str = "claude-sonnet-4-5"
    agent_timeout_s: float = Field(default=7200.0, gt=0)
    repo_dir: str = "repo"
    preview_ports: list[int] = Field(default_factory=lambda: [3000, 5173, 8080])
    preview_ttl_s: int = Field(default=3600, ge=1)

    max_concurrency: int = Field(default=1, ge=1)
    max_iterations: int | None = Field(default=None, ge=1)
    max_stages: int = Field(default=10, ge=1)
    poll_interval_s: float = Field(default=5.0, ge=0.0)
    merge_mode: MergeMode = "pr"
    dispatch_mode: DispatchMode = "batch"

    anthropic_api_key: str = ""
    github_token: str = ""

    model_config = SettingsConfigDict(
        env_prefix="QUEUE_ORCHESTRATOR_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_anthropic_api_key(self) -> str:
        return self.anthropic_api_key or os.getenv("ANTHROPIC_API_KEY", "")

    def resolved_github_token(self) -> str:
        return self.github_token or os.getenv("GITHUB_TOKEN", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
