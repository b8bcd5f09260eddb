"""Runtime configuration."""

from queue_orchestrator.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
