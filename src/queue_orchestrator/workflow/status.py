"""Task status vocabulary and the closed stage transition tables.

Every status belongs to exactly one class:
- actionable: eligible for dispatch, one per pipeline stage (Backlog is the single-shot stage).
- in progress: set while the matching actionable stage runs.
- resting: nothing runs until a human or a later event moves the task again.

The tables below are plain dicts on purpose. A status without an entry raises
StatusTransitionError instead of falling through, since the same tables pick
the prompt that is sent to the agent.
"""

from __future__ import annotations

from enum import Enum

from queue_orchestrator.errors import StatusTransitionError


class TaskStatus(str, Enum):
    BACKLOG = "Backlog"
    NEEDS_RESEARCH = "Needs Research"
    RESEARCH_IN_PROGRESS = "Research In Progress"
    NEEDS_SPECIFICATION = "Needs Specification"
    SPECIFICATION_IN_PROGRESS = "Specification In Progress"
    NEEDS_PLAN = "Needs Plan"
    PLAN_IN_PROGRESS = "Plan In Progress"
    NEEDS_IMPLEMENT = "Needs Implement"
    IMPLEMENT_IN_PROGRESS = "Implement In Progress"
    NEEDS_VALIDATE = "Needs Validate"
    VALIDATE_IN_PROGRESS = "Validate In Progress"
    ONESHOT_IN_PROGRESS = "Oneshot In Progress"
    BLOCKED = "Blocked"
    NEEDS_HUMAN_REVIEW = "Needs Human Review"
    NEEDS_HUMAN_DECISION = "Needs Human Decision"
    AWAITING_MERGE = "Awaiting Merge"
    DONE = "Done"
    CANCELED = "Canceled"

    def __str__(self) -> str:
        return self.value


# actionable status -> (in-progress status, stage name)
_STAGES: dict[TaskStatus, tuple[TaskStatus, str]] = {
    TaskStatus.BACKLOG: (TaskStatus.ONESHOT_IN_PROGRESS, "oneshot"),
    TaskStatus.NEEDS_RESEARCH: (TaskStatus.RESEARCH_IN_PROGRESS, "research"),
    TaskStatus.NEEDS_SPECIFICATION: (TaskStatus.SPECIFICATION_IN_PROGRESS, "specification"),
    TaskStatus.NEEDS_PLAN: (TaskStatus.PLAN_IN_PROGRESS, "plan"),
    TaskStatus.NEEDS_IMPLEMENT: (TaskStatus.IMPLEMENT_IN_PROGRESS, "implement"),
    TaskStatus.NEEDS_VALIDATE: (TaskStatus.VALIDATE_IN_PROGRESS, "validate"),
}

ACTIONABLE_STATUSES = frozenset(_STAGES)
IN_PROGRESS_STATUSES = frozenset(in_progress for in_progress, _ in _STAGES.values())
TERMINAL_STATUSES = frozenset({TaskStatus.DONE, TaskStatus.CANCELED})
INTERVENTION_STATUSES = frozenset(
    {
        TaskStatus.BLOCKED,
        TaskStatus.NEEDS_HUMAN_REVIEW,
        TaskStatus.NEEDS_HUMAN_DECISION,
    }
)
RESTING_STATUSES = TERMINAL_STATUSES | INTERVENTION_STATUSES | {TaskStatus.AWAITING_MERGE}
CODE_PRODUCING_STATUSES = frozenset(
    {TaskStatus.BACKLOG, TaskStatus.NEEDS_IMPLEMENT, TaskStatus.NEEDS_VALIDATE}
)

_BY_VALUE = {status.value: status for status in TaskStatus}
_BY_LOWER_VALUE = {status.value.lower(): status for status in TaskStatus}
_TOKEN_MARKERS = "∞"
_TOKEN_QUOTES = "\"'"


def is_actionable(status: TaskStatus) -> bool:
    return status in ACTIONABLE_STATUSES


def is_in_progress(status: TaskStatus) -> bool:
    return status in IN_PROGRESS_STATUSES


def is_resting(status: TaskStatus) -> bool:
    return status in RESTING_STATUSES


def is_terminal(status: TaskStatus) -> bool:
    """Done or Canceled: the task will never run again."""
    return status in TERMINAL_STATUSES


def is_intervention(status: TaskStatus) -> bool:
    """Parked until someone resets the status by hand."""
    return status in INTERVENTION_STATUSES


def is_code_producing(status: TaskStatus) -> bool:
    return status in CODE_PRODUCING_STATUSES


def in_progress_status(status: TaskStatus) -> TaskStatus:
    try:
        return _STAGES[status][0]
    except KeyError:
        raise StatusTransitionError(f"No in-progress status for: {status}") from None


def stage_name(status: TaskStatus) -> str:
    try:
        return _STAGES[status][1]
    except KeyError:
        raise StatusTransitionError(f"No pipeline stage for: {status}") from None


def stage_key(status: TaskStatus) -> str:
    """Name of the prompt template that drives the stage for an actionable status."""
    return f"worker-{stage_name(status)}"


def resolve_status(raw: object) -> TaskStatus | None:
    """Exact lookup of a persisted status string."""
    if isinstance(raw, TaskStatus):
        return raw
    if not isinstance(raw, str):
        return None
    return _BY_VALUE.get(raw.strip())


def resolve_status_token(raw: str) -> TaskStatus | None:
    """Lenient lookup for status tokens written by the agent.

    Accepts `Needs Plan`, `"∞ Needs Plan"`, `'done'` and similar spellings.
    """
    cleaned = raw.strip().strip(_TOKEN_QUOTES).strip()
    cleaned = cleaned.lstrip(_TOKEN_MARKERS).strip().strip(_TOKEN_QUOTES).strip()
    return _BY_LOWER_VALUE.get(cleaned.lower())


def _check_tables() -> None:
    classes = (ACTIONABLE_STATUSES, IN_PROGRESS_STATUSES, RESTING_STATUSES)
    covered = set().union(*classes)
    if covered != set(TaskStatus) or sum(len(c) for c in classes) != len(TaskStatus):
        raise StatusTransitionError("Status classes must partition TaskStatus")
    if len(IN_PROGRESS_STATUSES) != len(_STAGES):
        raise StatusTransitionError("Each actionable status needs its own in-progress status")


_check_tables()
