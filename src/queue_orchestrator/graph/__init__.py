"""Per-task stage dispatch graph."""
