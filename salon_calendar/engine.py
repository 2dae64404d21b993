"""Calendar engine: the surface the UI layer talks to.

Wires the store, grid and orchestrator to injected collaborators and
keeps the view state (active window, view type, visible staff).
"""
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from salon_calendar.booking import BookingOrchestrator
from salon_calendar.collaborators import (
    AppointmentPersistence,
    ClientDirectory,
    ServiceCatalog,
    StaffDirectory,
)
from salon_calendar.config import CalendarSettings
from salon_calendar.grid import GridColumn, TimeGrid
from salon_calendar.lifecycle import Action, allowed_actions
from salon_calendar.models import (
    Appointment,
    Client,
    StaffMember,
    TimeWindow,
    ViewType,
    VisibilitySet,
)
from salon_calendar.store import AppointmentStore


class CalendarEngine:
    """Multi-staff calendar over injected backend collaborators."""

    def __init__(
        self,
        persistence: AppointmentPersistence,
        services: ServiceCatalog,
        staff_directory: StaffDirectory,
        clients: ClientDirectory,
        settings: Optional[CalendarSettings] = None,
        on_double_booking=None,
    ):
        self.settings = settings or CalendarSettings()
        self.grid = TimeGrid.from_settings(self.settings)
        self.store = AppointmentStore(persistence)
        self.orchestrator = BookingOrchestrator(
            self.store, persistence, services, self.grid, on_double_booking=on_double_booking
        )
        self.visibility = VisibilitySet()
        self._staff_directory = staff_directory
        self._clients = clients
        self._staff: List[StaffMember] = []
        self._view = ViewType.DAY
        self._anchor: Optional[date] = None

    @classmethod
    def from_backend(cls, backend, settings: Optional[CalendarSettings] = None, **kwargs) -> "CalendarEngine":
        """Build from one object implementing every collaborator contract."""
        return cls(backend, backend, backend, backend, settings=settings, **kwargs)

    @property
    def tz(self):
        return self.grid.tz

    @property
    def view(self) -> ViewType:
        return self._view

    @property
    def window(self) -> Optional[TimeWindow]:
        return self.store.window

    @property
    def staff(self) -> List[StaffMember]:
        return list(self._staff)

    async def load_staff(self) -> List[StaffMember]:
        """Fetch grid columns; everyone is visible after the first load."""
        self._staff = await self._staff_directory.list_staff()
        self.visibility.initialize(self._staff)
        return self.staff

    # Window navigation

    async def open(self, day: date, view: Optional[ViewType] = None) -> List[Appointment]:
        """Load the day or week containing day; day stays the anchor for view switches."""
        view = self._view if view is None else ViewType(view)
        window = TimeWindow.for_view(view, day, self.tz)
        loaded = await self.store.load_window(window)
        if self.store.window is window:
            self._view = view
            self._anchor = day
        return loaded

    async def open_day(self, day: date) -> List[Appointment]:
        return await self.open(day, ViewType.DAY)

    async def open_week(self, day: date) -> List[Appointment]:
        return await self.open(day, ViewType.WEEK)

    async def switch_view(self, view: ViewType) -> List[Appointment]:
        """Change day/week while staying on the same anchor day."""
        self._current_window()
        return await self.open(self._anchor, view)

    async def next_period(self) -> List[Appointment]:
        return await self._step(1)

    async def previous_period(self) -> List[Appointment]:
        return await self._step(-1)

    async def _step(self, periods: int) -> List[Appointment]:
        self._current_window()
        days = 7 if self._view == ViewType.WEEK else 1
        return await self.open(self._anchor + timedelta(days=days * periods))

    async def today(self, now: Optional[datetime] = None) -> List[Appointment]:
        now = now or datetime.now(self.tz)
        return await self.open(now.astimezone(self.tz).date())

    def _current_window(self) -> TimeWindow:
        if self.store.window is None or self._anchor is None:
            raise RuntimeError("No calendar window loaded; call open() first")
        return self.store.window

    # Queries

    async def appointments(self) -> List[Appointment]:
        return await self.store.appointments()

    async def columns(self) -> List[GridColumn]:
        """Grid columns for the active window and view."""
        window = self._current_window()
        appointments = await self.store.appointments()
        if window.view == ViewType.WEEK:
            return self.grid.week_columns(window, self._staff, self.visibility, appointments)
        return self.grid.day_columns(window, self._staff, self.visibility, appointments)

    def slot_target(self, column: GridColumn, index: int) -> Tuple[Optional[int], datetime]:
        """
        Booking defaults for a clicked empty slot.

        Day view columns are staff members; week view columns are days,
        so the first visible staff member is proposed.
        """
        start = self.grid.slot_start(column.day, index)
        if isinstance(column.key, int):
            return column.key, start
        visible = self.visibility.filter(self._staff)
        return (visible[0].id if visible else None), start

    def actions_for(self, appointment: Appointment) -> frozenset:
        """Enabled UI actions for an appointment."""
        return allowed_actions(appointment.status)

    def can(self, appointment: Appointment, action: Action) -> bool:
        return Action(action) in self.actions_for(appointment)

    # Commands

    async def book(
        self,
        client_id: int,
        staff_id: int,
        service_id: int,
        start: datetime,
        notes: Optional[str] = None
    ) -> Appointment:
        return await self.orchestrator.book(client_id, staff_id, service_id, start, notes)

    async def reschedule(self, appointment_id: int, new_start: datetime) -> Appointment:
        return await self.orchestrator.reschedule(appointment_id, new_start)

    async def change_status(self, appointment_id: int, target_status) -> Appointment:
        return await self.orchestrator.change_status(appointment_id, target_status)

    async def cancel(self, appointment_id: int) -> Appointment:
        return await self.orchestrator.cancel(appointment_id)

    async def check_in(self, appointment_id: int) -> Appointment:
        return await self.orchestrator.check_in(appointment_id)

    async def complete(self, appointment_id: int) -> Appointment:
        return await self.orchestrator.complete(appointment_id)

    # Client directory

    async def search_clients(self, query: str) -> List[Client]:
        query = query.strip()
        if not query:
            return []
        return await self._clients.search_clients(query)

    async def get_client(self, client_id: int) -> Client:
        return await self._clients.get_client(client_id)
