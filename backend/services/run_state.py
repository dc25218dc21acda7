"""Run status state machine and traffic-light derivation."""

from enum import Enum

from models import ReconciliationRun
from services.exceptions import IllegalRunTransition


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StatusColor(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


TERMINAL_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED})

_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.RUNNING, RunStatus.PROCESSING, RunStatus.FAILED}),
    RunStatus.RUNNING: frozenset({RunStatus.PROCESSING, RunStatus.COMPLETED, RunStatus.FAILED}),
    RunStatus.PROCESSING: frozenset({RunStatus.RUNNING, RunStatus.COMPLETED, RunStatus.FAILED}),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
}

# Engine callbacks may replace one terminal result with another (last write wins).
_CALLBACK_OVERWRITES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED})


def is_terminal(status: str | RunStatus) -> bool:
    return RunStatus(status) in TERMINAL_STATUSES


def can_transition(
    current: str | RunStatus, target: str | RunStatus, via_callback: bool = False
) -> bool:
    """Return True if ``current -> target`` is allowed.

    Re-asserting a non-terminal status is a no-op and allowed.
    """
    current = RunStatus(current)
    target = RunStatus(target)
    if current == target and current not in TERMINAL_STATUSES:
        return True
    if target in _TRANSITIONS[current]:
        return True
    return via_callback and current in TERMINAL_STATUSES and target in _CALLBACK_OVERWRITES


def transition(
    run: ReconciliationRun, target: str | RunStatus, via_callback: bool = False
) -> RunStatus:
    """Move a run to ``target``, returning its previous status.

    Raises:
        IllegalRunTransition: e.g. ``completed -> processing``.
    """
    previous = RunStatus(run.status)
    target = RunStatus(target)
    if not can_transition(previous, target, via_callback=via_callback):
        raise IllegalRunTransition(previous.value, target.value)
    run.status = target.value
    return previous


def derive_status_color(action_items_count: int | None) -> StatusColor:
    """Traffic light for an action-items count.

    0 or unknown is green, 1 to 3 is yellow, 4 or more is red.
    """
    if action_items_count is None or action_items_count <= 0:
        return StatusColor.GREEN
    if action_items_count <= 3:
        return StatusColor.YELLOW
    return StatusColor.RED
