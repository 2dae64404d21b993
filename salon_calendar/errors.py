"""Error taxonomy for the scheduling core.

All errors are recoverable: the UI decides whether to retry.
"""
from datetime import tzinfo
from typing import List, Optional


class SchedulingError(Exception):
    """Base class for calendar core errors."""
    pass


class DataAccessError(SchedulingError):
    """Collaborator or transport failure. No local state was changed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class SchedulingConflictError(SchedulingError):
    """Proposed slot overlaps an active appointment of the same staff member."""

    def __init__(self, conflicting, alternatives: Optional[List] = None, tz: Optional[tzinfo] = None):
        """
        Args:
            conflicting: Earliest overlapping appointment
            alternatives: Free start instants to offer instead
            tz: Salon timezone used for the wall-clock times in the message
        """
        self.conflicting = conflicting
        self.alternatives = list(alternatives or [])
        start, end = conflicting.start, conflicting.end
        if tz is not None:
            start, end = start.astimezone(tz), end.astimezone(tz)
        super().__init__(
            f"Staff {conflicting.staff_id} already has appointment "
            f"{conflicting.id} from {start:%H:%M} to {end:%H:%M}"
        )


class InvalidTransitionError(SchedulingError):
    """Status change not permitted from the current status."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move appointment from '{current.value}' to '{target.value}'"
        )


class AppointmentNotFoundError(SchedulingError, LookupError):
    """Appointment id is not present in the loaded state."""

    def __init__(self, appointment_id: int):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id} not found")
