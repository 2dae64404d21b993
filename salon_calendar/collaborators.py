"""Contracts for the external systems the scheduling core depends on.

Implementations live in salon_calendar.backends. Every method may raise
DataAccessError on transport or database failure.
"""
from datetime import datetime
from typing import List, Optional, Protocol, Tuple, TypedDict, runtime_checkable

from salon_calendar.models import Appointment, Client, Service, StaffMember


# (start, end) half-open instant range
InstantRange = Tuple[datetime, datetime]


class NewAppointmentFields(TypedDict):
    """Fields committed when booking."""
    client_id: int
    staff_id: int
    service_id: int
    start: datetime
    duration_minutes: int
    status: str  # backend label, e.g. "Scheduled"
    notes: Optional[str]


class AppointmentUpdate(TypedDict, total=False):
    """
    Partial update of an appointment.

    total=False: reschedule sends only start, status changes only status.
    """
    start: datetime
    status: str


@runtime_checkable
class AppointmentPersistence(Protocol):
    """Remote appointment table."""

    async def fetch_appointments(self, range: InstantRange) -> List[Appointment]:
        """Appointments whose start falls in [range[0], range[1]), ordered by start."""
        ...

    async def insert_appointment(self, fields: NewAppointmentFields) -> Appointment:
        ...

    async def update_appointment(self, appointment_id: int, fields: AppointmentUpdate) -> Appointment:
        ...


@runtime_checkable
class ServiceCatalog(Protocol):
    """Service lookup."""

    async def get_service(self, service_id: int) -> Service:
        ...


@runtime_checkable
class StaffDirectory(Protocol):
    """Staff listing, ordered by first name."""

    async def list_staff(self) -> List[StaffMember]:
        ...


@runtime_checkable
class ClientDirectory(Protocol):
    """Client lookup."""

    async def search_clients(self, query: str) -> List[Client]:
        ...

    async def get_client(self, client_id: int) -> Client:
        ...
