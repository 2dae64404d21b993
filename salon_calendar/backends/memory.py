"""In-memory backend implementing every collaborator contract.

Used by the test suite and for local demos. Behaves like the remote
tables: ids are assigned on insert, unknown ids fail with DataAccessError.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from salon_calendar.collaborators import AppointmentUpdate, InstantRange, NewAppointmentFields
from salon_calendar.errors import DataAccessError
from salon_calendar.models import Appointment, AppointmentStatus, Client, Service, StaffMember


CLIENT_SEARCH_LIMIT = 50


class InMemoryBackend:
    """Appointment table plus staff, service and client directories."""

    def __init__(
        self,
        staff: Iterable[StaffMember] = (),
        services: Iterable[Service] = (),
        clients: Iterable[Client] = (),
    ):
        self.staff: Dict[int, StaffMember] = {s.id: s for s in staff}
        self.services: Dict[int, Service] = {s.id: s for s in services}
        self.clients: Dict[int, Client] = {c.id: c for c in clients}
        self.appointments: Dict[int, Appointment] = {}
        self.calls: List[Tuple[str, object]] = []
        # Operation names that raise DataAccessError ("fetch", "insert", "update", ...)
        self.failing: Set[str] = set()
        self._next_id = 1000

    def _check(self, operation: str, payload=None) -> None:
        self.calls.append((operation, payload))
        if operation in self.failing:
            raise DataAccessError(f"Simulated backend failure during {operation}")

    def _allocate_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def seed_appointment(
        self,
        staff_id: int,
        start: datetime,
        duration_minutes: int = 30,
        status=AppointmentStatus.SCHEDULED,
        client_id: int = 1,
        service_id: int = 1,
        notes: Optional[str] = None,
        appointment_id: Optional[int] = None,
    ) -> Appointment:
        """Store an appointment directly, as if another terminal had booked it."""
        if appointment_id is None:
            appointment_id = self._allocate_id()
        appointment = self._build(appointment_id, {
            "client_id": client_id,
            "staff_id": staff_id,
            "service_id": service_id,
            "start": start,
            "duration_minutes": duration_minutes,
            "status": status,
            "notes": notes,
        })
        self.appointments[appointment.id] = appointment
        return appointment

    def _build(self, appointment_id: int, values: dict) -> Appointment:
        staff = self.staff.get(values["staff_id"])
        service = self.services.get(values["service_id"])
        client = self.clients.get(values["client_id"])
        return Appointment(
            id=appointment_id,
            staff_name=staff.display_name if staff else None,
            service_name=service.name if service else None,
            client_name=client.display_name if client else None,
            **values,
        )

    async def fetch_appointments(self, range: InstantRange) -> List[Appointment]:
        self._check("fetch", range)
        start, end = range
        found = [a for a in self.appointments.values() if start <= a.start < end]
        return sorted(found, key=lambda a: (a.start, a.id))

    async def insert_appointment(self, fields: NewAppointmentFields) -> Appointment:
        self._check("insert", dict(fields))
        appointment = self._build(self._allocate_id(), dict(fields))
        self.appointments[appointment.id] = appointment
        return appointment

    async def update_appointment(self, appointment_id: int, fields: AppointmentUpdate) -> Appointment:
        self._check("update", (appointment_id, dict(fields)))
        current = self.appointments.get(appointment_id)
        if current is None:
            raise DataAccessError(f"Appointment {appointment_id} does not exist")

        values = current.model_dump()
        values.update(fields)
        updated = Appointment(**values)
        self.appointments[appointment_id] = updated
        return updated

    async def get_service(self, service_id: int) -> Service:
        self._check("get_service", service_id)
        try:
            return self.services[service_id]
        except KeyError:
            raise DataAccessError(f"Service {service_id} does not exist") from None

    async def list_staff(self) -> List[StaffMember]:
        self._check("list_staff")
        return sorted(self.staff.values(), key=lambda s: (s.first_name, s.id))

    async def search_clients(self, query: str) -> List[Client]:
        self._check("search_clients", query)
        needle = query.strip().lower()
        matches = [
            c for c in self.clients.values()
            if any(needle in (value or "").lower() for value in (c.first_name, c.last_name, c.phone_number))
        ]
        matches.sort(key=lambda c: (c.first_name, c.id))
        return matches[:CLIENT_SEARCH_LIMIT]

    async def get_client(self, client_id: int) -> Client:
        self._check("get_client", client_id)
        try:
            return self.clients[client_id]
        except KeyError:
            raise DataAccessError(f"Client {client_id} does not exist") from None
