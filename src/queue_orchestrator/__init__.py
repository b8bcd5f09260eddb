"""Queue orchestrator: drives engineering tasks through agent pipeline stages."""

__version__ = "0.1.0"
