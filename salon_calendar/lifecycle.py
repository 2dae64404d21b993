"""Appointment lifecycle state machine.

scheduled -> checked-in -> completed, with cancel allowed from any
non-terminal state. completed and cancelled are terminal. Rescheduling
keeps the status and is only allowed while scheduled.
"""
from enum import Enum
from typing import Dict, FrozenSet, List

from salon_calendar.errors import InvalidTransitionError
from salon_calendar.models import AppointmentStatus


class Action(str, Enum):
    """User-facing actions on an appointment."""
    CHECK_IN = "check_in"
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"
    CHECKOUT = "checkout"


# Status changes: current status -> statuses it may move to
VALID_TRANSITIONS: Dict[AppointmentStatus, List[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: [
        AppointmentStatus.CHECKED_IN,
        AppointmentStatus.CANCELLED,
    ],
    AppointmentStatus.CHECKED_IN: [
        AppointmentStatus.COMPLETED,  # checkout handoff
        AppointmentStatus.CANCELLED,
    ],
    AppointmentStatus.COMPLETED: [],
    AppointmentStatus.CANCELLED: [],
}

RESCHEDULABLE: FrozenSet[AppointmentStatus] = frozenset({AppointmentStatus.SCHEDULED})

# Target status behind each status-changing action
ACTION_TARGETS: Dict[Action, AppointmentStatus] = {
    Action.CHECK_IN: AppointmentStatus.CHECKED_IN,
    Action.CANCEL: AppointmentStatus.CANCELLED,
    Action.CHECKOUT: AppointmentStatus.COMPLETED,
}


def validate_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    """
    Validate a status change.

    Example:
        >>> validate_transition(AppointmentStatus.SCHEDULED, AppointmentStatus.CHECKED_IN)
        True
        >>> validate_transition(AppointmentStatus.CHECKED_IN, AppointmentStatus.SCHEDULED)
        False
    """
    return target in VALID_TRANSITIONS.get(current, [])


def require_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if not validate_transition(current, target):
        raise InvalidTransitionError(current, target)


def require_reschedulable(current: AppointmentStatus) -> None:
    """Only scheduled appointments may move; the attempted target is scheduled."""
    if current not in RESCHEDULABLE:
        raise InvalidTransitionError(current, AppointmentStatus.SCHEDULED)


def allowed_actions(current: AppointmentStatus) -> FrozenSet[Action]:
    """Actions the UI should enable for an appointment in `current`."""
    actions = {
        action for action, target in ACTION_TARGETS.items()
        if validate_transition(current, target)
    }
    if current in RESCHEDULABLE:
        actions.add(Action.RESCHEDULE)
    return frozenset(actions)
