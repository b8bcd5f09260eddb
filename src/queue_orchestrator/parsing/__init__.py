"""Parsers for agent output."""

from queue_orchestrator.parsing.work_result import MARKER, parse_block, parse_work_result

__all__ = ["MARKER", "parse_block", "parse_work_result"]
