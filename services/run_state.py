"""
Lobstr run lifecycle: planned -> tasks_being_added -> running ->
(target_reached | completed), with stopped / aborted / failed exits
"""
import logging
from datetime import datetime, timezone
from enum import Enum

from errors import InvalidRunTransition

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    PLANNED = "planned"
    TASKS_BEING_ADDED = "tasks_being_added"
    RUNNING = "running"
    TARGET_REACHED = "target_reached"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ABORTED = "aborted"
    FAILED = "failed"


TERMINAL_STATUSES = {
    RunStatus.TARGET_REACHED,
    RunStatus.COMPLETED,
    RunStatus.STOPPED,
    RunStatus.ABORTED,
    RunStatus.FAILED,
}

# A finished row may be reused for a new run of the same user and squid
ALLOWED_TRANSITIONS = {
    RunStatus.PLANNED: {RunStatus.TASKS_BEING_ADDED, RunStatus.RUNNING, RunStatus.STOPPED,
                        RunStatus.ABORTED, RunStatus.FAILED},
    RunStatus.TASKS_BEING_ADDED: {RunStatus.TASKS_BEING_ADDED, RunStatus.RUNNING, RunStatus.FAILED},
    RunStatus.RUNNING: {RunStatus.TARGET_REACHED, RunStatus.COMPLETED, RunStatus.STOPPED,
                        RunStatus.ABORTED, RunStatus.FAILED},
    RunStatus.TARGET_REACHED: {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.TASKS_BEING_ADDED},
    RunStatus.COMPLETED: {RunStatus.TASKS_BEING_ADDED},
    RunStatus.STOPPED: {RunStatus.TASKS_BEING_ADDED},
    RunStatus.ABORTED: {RunStatus.TASKS_BEING_ADDED},
    RunStatus.FAILED: {RunStatus.TASKS_BEING_ADDED},
}


def can_transition(current: str, target: RunStatus) -> bool:
    current_status = RunStatus(current)
    return current_status == target or target in ALLOWED_TRANSITIONS[current_status]


def is_terminal(status: str) -> bool:
    return RunStatus(status) in TERMINAL_STATUSES


def transition(run, target: RunStatus) -> None:
    """
    Move a LobstrRun row to `target`, stamping completed_at on terminal states

    Raises:
        InvalidRunTransition: the move is not in the lifecycle
    """
    current = run.status or RunStatus.PLANNED.value
    if not can_transition(current, target):
        raise InvalidRunTransition(current, target.value)

    if current != target.value:
        logger.info(f"[RunState] Run {run.id}: {current} -> {target.value}")
    run.status = target.value
    if target in TERMINAL_STATUSES and not run.completed_at:
        run.completed_at = datetime.now(timezone.utc)
