"""Shared test fixtures."""
from datetime import datetime, timezone

import pytest

from salon_calendar.backends.memory import InMemoryBackend
from salon_calendar.config import CalendarSettings
from salon_calendar.engine import CalendarEngine
from salon_calendar.models import Client, Service, StaffMember


@pytest.fixture
def at():
    """Build a UTC instant on 2024-01-10 (a Wednesday) unless another day is given."""
    def _at(hour: int, minute: int = 0, day: int = 10) -> datetime:
        return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)
    return _at


@pytest.fixture
def staff():
    return [
        StaffMember(id=1, first_name="Sofia", last_name="Reyes", specialty="Color"),
        StaffMember(id=2, first_name="Marco", last_name="Diaz"),
        StaffMember(id=3, first_name="Ana"),
    ]


@pytest.fixture
def services():
    return [
        Service(id=10, name="Haircut", duration_minutes=30, price=25.0),
        Service(id=11, name="Color", duration_minutes=45, price=60.0, category="Color"),
        Service(id=12, name="Perm", duration_minutes=90, price=80.0),
    ]


@pytest.fixture
def clients():
    return [
        Client(id=100, first_name="Laura", last_name="Gomez", phone_number="555-0101"),
        Client(id=101, first_name="Pedro", last_name="Alvarez", phone_number="555-0102"),
        Client(id=102, first_name="Lucia", phone_number="555-0199"),
    ]


@pytest.fixture
def backend(staff, services, clients) -> InMemoryBackend:
    return InMemoryBackend(staff=staff, services=services, clients=clients)


@pytest.fixture
def settings() -> CalendarSettings:
    return CalendarSettings(timezone="UTC")


@pytest.fixture
def engine(backend, settings) -> CalendarEngine:
    return CalendarEngine.from_backend(backend, settings)


def calls_named(backend: InMemoryBackend, name: str) -> list:
    """Recorded backend calls of one operation."""
    return [payload for operation, payload in backend.calls if operation == name]
