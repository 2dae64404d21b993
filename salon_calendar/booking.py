"""Booking, reschedule and status-change orchestration.

Each operation runs its steps strictly in order: resolve, validate
against a fresh backend read, commit, mirror into the store. Commits are
never retried here; retrying a booking could double-book.
"""
import asyncio
from datetime import datetime, time, timedelta
from typing import Callable, List, Optional

from salon_calendar import config
from salon_calendar.collaborators import (
    AppointmentPersistence,
    AppointmentUpdate,
    NewAppointmentFields,
    ServiceCatalog,
)
from salon_calendar.conflict import ConflictDetector
from salon_calendar.errors import (
    AppointmentNotFoundError,
    DataAccessError,
    InvalidTransitionError,
    SchedulingConflictError,
)
from salon_calendar.grid import TimeGrid
from salon_calendar.lifecycle import require_reschedulable, require_transition
from salon_calendar.logging_config import generate_operation_id, get_logger
from salon_calendar.models import Appointment, AppointmentStatus
from salon_calendar.store import AppointmentStore

logger = get_logger(__name__)


def _validate_start(start: datetime) -> None:
    if start.tzinfo is None or start.utcoffset() is None:
        raise ValueError("start must be timezone-aware")
    if start.second or start.microsecond:
        raise ValueError("start must have minute granularity")


class BookingOrchestrator:
    """Validates and commits booking, reschedule and status requests."""

    def __init__(
        self,
        store: AppointmentStore,
        persistence: AppointmentPersistence,
        services: ServiceCatalog,
        grid: TimeGrid,
        on_double_booking: Optional[Callable[[Appointment, List[Appointment]], None]] = None,
    ):
        """
        Args:
            store: Cache of the active window
            persistence: Backend receiving the commits
            services: Service lookup (durations)
            grid: Grid whose hours bound alternative suggestions
            on_double_booking: Called when a post-commit check finds an overlap
                               written concurrently by another terminal
        """
        self._store = store
        self._persistence = persistence
        self._services = services
        self._grid = grid
        self._on_double_booking = on_double_booking

    async def book(
        self,
        client_id: int,
        staff_id: int,
        service_id: int,
        start: datetime,
        notes: Optional[str] = None
    ) -> Appointment:
        """
        Book a new appointment.

        Returns:
            The committed appointment (status scheduled)

        Raises:
            SchedulingConflictError: Slot overlaps an active appointment
            DataAccessError: Service lookup, read or commit failed
        """
        _validate_start(start)
        log = logger.bind(
            operation_id=generate_operation_id(),
            operation="book",
            staff_id=staff_id,
            start=start.isoformat(),
        )

        service = await self._services.get_service(service_id)
        duration = service.duration_minutes

        self._raise_on_conflict(
            await self._scan(start, duration), staff_id, start, duration, None, log
        )

        fields = NewAppointmentFields(
            client_id=client_id,
            staff_id=staff_id,
            service_id=service_id,
            start=start,
            duration_minutes=duration,
            status=AppointmentStatus.SCHEDULED.label,
            notes=notes or None,
        )
        created = await self._commit(log, self._persistence.insert_appointment(fields))

        log.info("appointment_booked", appointment_id=created.id, duration_minutes=duration)
        await self._recheck(created, log)
        return created

    async def reschedule(self, appointment_id: int, new_start: datetime) -> Appointment:
        """
        Move a scheduled appointment; staff, service and duration stay the same.

        Raises:
            AppointmentNotFoundError: Id not in the active window
            InvalidTransitionError: Appointment is not scheduled
            SchedulingConflictError: New slot overlaps another appointment
            DataAccessError: Read or commit failed
        """
        _validate_start(new_start)
        log = logger.bind(
            operation_id=generate_operation_id(),
            operation="reschedule",
            appointment_id=appointment_id,
            start=new_start.isoformat(),
        )

        current = await self._load(appointment_id)
        try:
            require_reschedulable(current.status)
        except InvalidTransitionError:
            log.warning("transition_rejected", status=current.status.value)
            raise

        self._raise_on_conflict(
            await self._scan(new_start, current.duration_minutes),
            current.staff_id, new_start, current.duration_minutes, appointment_id, log
        )

        update = AppointmentUpdate(start=new_start)
        moved = await self._commit(log, self._persistence.update_appointment(appointment_id, update))

        log.info("appointment_rescheduled", previous_start=current.start.isoformat())
        await self._recheck(moved, log)
        return moved

    async def change_status(self, appointment_id: int, target_status) -> Appointment:
        """
        Apply a lifecycle transition.

        Args:
            appointment_id: Appointment to change
            target_status: AppointmentStatus or its name ("Checked-in", "cancelled", ...)

        Raises:
            AppointmentNotFoundError: Id not in the active window
            InvalidTransitionError: Transition not allowed from the current status
            DataAccessError: Read or commit failed
        """
        target = AppointmentStatus.parse(target_status)
        log = logger.bind(
            operation_id=generate_operation_id(),
            operation="change_status",
            appointment_id=appointment_id,
            target=target.value,
        )

        current = await self._load(appointment_id)
        try:
            require_transition(current.status, target)
        except InvalidTransitionError:
            log.warning("transition_rejected", status=current.status.value)
            raise

        update = AppointmentUpdate(status=target.label)
        changed = await self._commit(log, self._persistence.update_appointment(appointment_id, update))

        log.info("status_changed", previous=current.status.value)
        return changed

    async def cancel(self, appointment_id: int) -> Appointment:
        return await self.change_status(appointment_id, AppointmentStatus.CANCELLED)

    async def check_in(self, appointment_id: int) -> Appointment:
        return await self.change_status(appointment_id, AppointmentStatus.CHECKED_IN)

    async def complete(self, appointment_id: int) -> Appointment:
        """Checkout handoff: checked-in -> completed."""
        return await self.change_status(appointment_id, AppointmentStatus.COMPLETED)

    async def _load(self, appointment_id: int) -> Appointment:
        current = await self._store.get(appointment_id, refresh=True)
        if current is None:
            raise AppointmentNotFoundError(appointment_id)
        return current

    async def _scan(self, start: datetime, duration_minutes: int) -> List[Appointment]:
        """
        Fresh backend read covering the start's whole local day.

        Reaches back by the longest possible service so appointments that
        started earlier but are still running are included.
        """
        day = start.astimezone(self._grid.tz).date()
        day_start = datetime.combine(day, time.min, tzinfo=self._grid.tz)
        day_end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self._grid.tz)
        lookback = timedelta(minutes=config.MAX_SERVICE_DURATION_MINUTES)

        range_start = min(start, day_start) - lookback
        range_end = max(start + timedelta(minutes=duration_minutes), day_end)
        return await self._store.fetch_range((range_start, range_end))

    def _raise_on_conflict(self, snapshot, staff_id, start, duration, exclude_id, log) -> None:
        detector = ConflictDetector(snapshot)
        clash = detector.find_conflict(staff_id, start, duration, exclude_id)
        if clash is None:
            return

        alternatives = detector.suggest_slots(
            staff_id, duration, start, self._grid, exclude_appointment_id=exclude_id
        )
        log.info(
            "booking_conflict",
            conflicting_id=clash.id,
            conflicting_start=clash.start.isoformat(),
            alternatives=len(alternatives),
        )
        raise SchedulingConflictError(clash, alternatives, tz=self._grid.tz)

    async def _commit(self, log, pending) -> Appointment:
        """
        Await one backend write and mirror it into the store.

        The write is shielded: cancelling the caller does not abort it, and
        the store is marked stale whatever the outcome.
        """
        write = asyncio.ensure_future(pending)
        try:
            committed = await asyncio.shield(write)
        except asyncio.CancelledError:
            log.warning("commit_detached")
            write.add_done_callback(self._settle_detached)
            raise
        except DataAccessError as e:
            log.error("commit_failed", error=str(e))
            raise
        finally:
            self._store.invalidate()

        self._store.upsert(committed)
        return committed

    def _settle_detached(self, write: asyncio.Future) -> None:
        """Mirror a write that finished after its caller was cancelled."""
        if not write.cancelled():
            error = write.exception()
            if error is None:
                self._store.upsert(write.result())
            else:
                logger.error("commit_failed", error=str(error))
        self._store.invalidate()

    async def _recheck(self, committed: Appointment, log) -> None:
        """Look for an overlap another terminal committed at the same time."""
        try:
            snapshot = await self._scan(committed.start, committed.duration_minutes)
        except DataAccessError as e:
            log.warning("double_booking_check_skipped", error=str(e))
            return

        others = ConflictDetector(snapshot).conflicts(
            committed.staff_id,
            committed.start,
            committed.duration_minutes,
            exclude_appointment_id=committed.id,
        )
        if not others:
            return

        log.error(
            "double_booking_detected",
            appointment_id=committed.id,
            conflicting_ids=[a.id for a in others],
        )
        if self._on_double_booking is not None:
            self._on_double_booking(committed, others)
