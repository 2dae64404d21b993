"""Double-booking detection for a staff member's appointments.

Pure over a snapshot: the detector never queries the backend itself.
Intervals are half-open, so back-to-back appointments do not collide.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from salon_calendar import config
from salon_calendar.grid import TimeGrid
from salon_calendar.models import Appointment


def intervals_overlap(
    start_a: datetime,
    duration_a: int,
    start_b: datetime,
    duration_b: int
) -> bool:
    """
    Check whether [start_a, start_a+duration_a) and [start_b, start_b+duration_b) overlap.

    Example:
        >>> from datetime import datetime, timezone
        >>> ten = datetime(2024, 1, 10, 10, 0, tzinfo=timezone.utc)
        >>> half_past = datetime(2024, 1, 10, 10, 30, tzinfo=timezone.utc)
        >>> intervals_overlap(ten, 30, half_past, 30)
        False
    """
    end_a = start_a + timedelta(minutes=duration_a)
    end_b = start_b + timedelta(minutes=duration_b)
    return start_a < end_b and start_b < end_a


class ConflictDetector:
    """Overlap queries over one snapshot of appointments."""

    def __init__(self, appointments: Iterable[Appointment]):
        self._by_staff: Dict[int, List[Appointment]] = defaultdict(list)
        for appointment in appointments:
            if appointment.is_active:
                self._by_staff[appointment.staff_id].append(appointment)
        for booked in self._by_staff.values():
            booked.sort(key=lambda a: (a.start, a.id))

    def conflicts(
        self,
        staff_id: int,
        start: datetime,
        duration_minutes: int,
        exclude_appointment_id: Optional[int] = None
    ) -> List[Appointment]:
        """All active appointments of staff_id overlapping the proposed interval."""
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")

        return [
            booked for booked in self._by_staff.get(staff_id, [])
            if booked.id != exclude_appointment_id
            and intervals_overlap(start, duration_minutes, booked.start, booked.duration_minutes)
        ]

    def find_conflict(
        self,
        staff_id: int,
        start: datetime,
        duration_minutes: int,
        exclude_appointment_id: Optional[int] = None
    ) -> Optional[Appointment]:
        """Earliest colliding appointment, or None when the slot is free."""
        found = self.conflicts(staff_id, start, duration_minutes, exclude_appointment_id)
        return found[0] if found else None

    def has_conflict(
        self,
        staff_id: int,
        start: datetime,
        duration_minutes: int,
        exclude_appointment_id: Optional[int] = None
    ) -> bool:
        return self.find_conflict(
            staff_id, start, duration_minutes, exclude_appointment_id
        ) is not None

    def suggest_slots(
        self,
        staff_id: int,
        duration_minutes: int,
        around: datetime,
        grid: TimeGrid,
        limit: int = config.MAX_ALTERNATIVES,
        exclude_appointment_id: Optional[int] = None
    ) -> List[datetime]:
        """
        Free slot-aligned start times for the same staff member on the same day.

        Starts at or after `around` come first, then earlier ones. A
        suggestion always ends inside the grid's rendered hours.

        Args:
            staff_id: Staff member to book
            duration_minutes: Length of the service
            around: Requested start that collided
            grid: Grid whose hours bound the search
            limit: Maximum suggestions
            exclude_appointment_id: Appointment being moved (reschedule)

        Returns:
            Up to `limit` start instants
        """
        day = around.astimezone(grid.tz).date()
        day_end = grid.slot_start(day, grid.slot_count)

        later, earlier = [], []
        for index in range(grid.slot_count):
            candidate = grid.slot_start(day, index)
            if candidate + timedelta(minutes=duration_minutes) > day_end:
                break
            if self.has_conflict(staff_id, candidate, duration_minutes, exclude_appointment_id):
                continue
            (later if candidate >= around else earlier).append(candidate)

        return (later + earlier[::-1])[:limit]
