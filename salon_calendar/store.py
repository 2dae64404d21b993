"""Appointment store: cache of confirmed backend state for the active window.

The store never originates writes. upsert() is only called with records
the backend has already committed; invalidate() makes the next read
reload the whole window.
"""
from typing import Dict, List, Optional

from salon_calendar.collaborators import AppointmentPersistence, InstantRange
from salon_calendar.errors import DataAccessError
from salon_calendar.logging_config import get_logger
from salon_calendar.models import Appointment, TimeWindow

logger = get_logger(__name__)


class AppointmentStore:
    """Window-scoped appointment cache backed by a persistence collaborator."""

    def __init__(self, persistence: AppointmentPersistence):
        self._persistence = persistence
        self._window: Optional[TimeWindow] = None
        self._cache: Dict[int, Appointment] = {}
        self._stale = False
        self._generation = 0  # latest load_window request
        self._mutations = 0  # upserts and invalidations so far

    @property
    def window(self) -> Optional[TimeWindow]:
        return self._window

    @property
    def is_stale(self) -> bool:
        return self._stale

    async def _fetch_window(self, window: TimeWindow) -> List[Appointment]:
        try:
            fetched = await self._persistence.fetch_appointments((window.start, window.end))
        except DataAccessError:
            logger.warning(
                "window_load_failed",
                window_start=window.start.isoformat(),
                window_end=window.end.isoformat(),
            )
            raise
        inside = [a for a in fetched if window.contains(a.start)]
        return sorted(inside, key=lambda a: (a.start, a.id))

    def _apply(self, window: TimeWindow, appointments: List[Appointment], mutations: int) -> None:
        self._cache = {a.id: a for a in appointments}
        self._window = window
        # A commit landed during the read; the rows may predate it
        self._stale = mutations != self._mutations

    async def load_window(self, window: TimeWindow) -> List[Appointment]:
        """
        Replace the cache with the appointments starting inside window.

        Raises:
            DataAccessError: Backend call failed; previous cache is kept
        """
        self._generation += 1
        generation = self._generation
        mutations = self._mutations

        fetched = await self._fetch_window(window)

        if generation != self._generation:
            # Navigation moved on while this load was in flight
            logger.debug("window_load_superseded", window_start=window.start.isoformat())
            return fetched

        self._apply(window, fetched, mutations)
        logger.info(
            "window_loaded",
            window_start=window.start.isoformat(),
            view=window.view.value,
            count=len(self._cache),
        )
        return self._sorted()

    async def _refresh(self) -> List[Appointment]:
        """
        Re-read the active window without claiming a new generation.

        The result is applied only if no navigation load started meanwhile,
        so a pending load_window always wins.
        """
        window, generation, mutations = self._window, self._generation, self._mutations
        fetched = await self._fetch_window(window)
        if generation == self._generation and self._window is window:
            self._apply(window, fetched, mutations)
        return fetched

    async def fetch_range(self, range: InstantRange) -> List[Appointment]:
        """Fresh read of an arbitrary range; leaves the cache untouched."""
        return await self._persistence.fetch_appointments(range)

    async def _ensure_fresh(self) -> None:
        if self._stale and self._window is not None:
            await self._refresh()

    async def appointments(self) -> List[Appointment]:
        """Cached appointments of the active window, ordered by start."""
        await self._ensure_fresh()
        return self._sorted()

    async def get(self, appointment_id: int, refresh: bool = False) -> Optional[Appointment]:
        """
        Look up one appointment in the active window.

        Args:
            appointment_id: Backend id
            refresh: Read the window from the backend first

        Returns:
            Appointment or None if not loaded
        """
        if refresh and self._window is not None:
            fresh = await self._refresh()
            return next((a for a in fresh if a.id == appointment_id), None)
        await self._ensure_fresh()
        return self._cache.get(appointment_id)

    def upsert(self, appointment: Appointment) -> None:
        """Mirror a committed record. Records outside the window are dropped."""
        self._mutations += 1
        if self._window is not None and self._window.contains(appointment.start):
            self._cache[appointment.id] = appointment
        else:
            self._cache.pop(appointment.id, None)

    def invalidate(self) -> None:
        """Force the next read to reload from the backend."""
        self._mutations += 1
        self._stale = True

    def snapshot(self) -> List[Appointment]:
        """Current cache without triggering a reload."""
        return self._sorted()

    def _sorted(self) -> List[Appointment]:
        return sorted(self._cache.values(), key=lambda a: (a.start, a.id))
