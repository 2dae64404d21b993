"""Scheduling core for a multi-staff salon calendar."""
from salon_calendar.booking import BookingOrchestrator
from salon_calendar.conflict import ConflictDetector, intervals_overlap
from salon_calendar.engine import CalendarEngine
from salon_calendar.errors import (
    AppointmentNotFoundError,
    DataAccessError,
    InvalidTransitionError,
    SchedulingConflictError,
    SchedulingError,
)
from salon_calendar.grid import SlotLayout, TimeGrid
from salon_calendar.models import (
    Appointment,
    AppointmentStatus,
    Client,
    Service,
    StaffMember,
    TimeWindow,
    ViewType,
    VisibilitySet,
)
from salon_calendar.store import AppointmentStore

__version__ = "1.0.0"

__all__ = [
    "Appointment",
    "AppointmentNotFoundError",
    "AppointmentStatus",
    "AppointmentStore",
    "BookingOrchestrator",
    "CalendarEngine",
    "Client",
    "ConflictDetector",
    "DataAccessError",
    "InvalidTransitionError",
    "SchedulingConflictError",
    "SchedulingError",
    "Service",
    "SlotLayout",
    "StaffMember",
    "TimeGrid",
    "TimeWindow",
    "ViewType",
    "VisibilitySet",
    "intervals_overlap",
]
