"""Time grid model: calendar coordinates <-> 30-minute slot offsets.

Pure functions, no state. Offsets are not clamped: an appointment before
the first rendered hour gets a negative offset and one after the last
rendered hour an offset past the last row. Callers clip visually
(TimeGrid.clip helps).
"""
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, List, Optional, Sequence, Union

from salon_calendar import config
from salon_calendar.models import Appointment, StaffMember, TimeWindow, VisibilitySet


@dataclass(frozen=True)
class SlotLayout:
    """Vertical position of an appointment, in slots."""
    offset_slots: int
    span_slots: int

    @property
    def end_slot(self) -> int:
        return self.offset_slots + self.span_slots


@dataclass
class Placement:
    """Appointment positioned inside a grid column."""
    appointment: Appointment
    offset_slots: int
    span_slots: int
    lane: int = 0  # horizontal position among overlapping placements
    lanes: int = 1

    @property
    def end_slot(self) -> int:
        return self.offset_slots + self.span_slots


@dataclass
class GridColumn:
    """One rendered column: a staff member (day view) or a date (week view)."""
    key: Union[int, date]
    label: str
    day: date
    subtitle: Optional[str] = None
    placements: List[Placement] = field(default_factory=list)


def span_slots(duration_minutes: int) -> int:
    """Rows covered by a duration, rounded up, never less than one."""
    return max(1, math.ceil(duration_minutes / config.SLOT_MINUTES))


def _local_day(instant: datetime, tz: tzinfo) -> date:
    return instant.astimezone(tz).date()


def assign_lanes(placements: List[Placement]) -> List[Placement]:
    """
    Spread overlapping placements across lanes.

    Placements that overlap (directly or through a chain) form a cluster;
    every member of a cluster gets the cluster's lane count so they share
    the column width evenly.
    """
    ordered = sorted(
        placements,
        key=lambda p: (p.offset_slots, -p.span_slots, p.appointment.id)
    )

    cluster: List[Placement] = []
    lane_ends: List[int] = []
    cluster_end = None

    def close_cluster():
        for member in cluster:
            member.lanes = len(lane_ends)

    for placement in ordered:
        if cluster and placement.offset_slots >= cluster_end:
            close_cluster()
            cluster, lane_ends = [], []

        for lane, lane_end in enumerate(lane_ends):
            if lane_end <= placement.offset_slots:
                placement.lane = lane
                lane_ends[lane] = placement.end_slot
                break
        else:
            placement.lane = len(lane_ends)
            lane_ends.append(placement.end_slot)

        cluster_end = placement.end_slot if not cluster else max(cluster_end, placement.end_slot)
        cluster.append(placement)

    if cluster:
        close_cluster()

    return ordered


class TimeGrid:
    """
    Calendar grid with a configurable rendered hour range.

    One row per 30-minute slot; 48 rows when the range spans the whole day.
    """

    def __init__(
        self,
        tz: tzinfo,
        start_hour: int = config.BUSINESS_HOURS["start"],
        end_hour: int = config.BUSINESS_HOURS["end"],
    ):
        if not 0 <= start_hour < end_hour <= 24:
            raise ValueError(f"Invalid grid hours: {start_hour}-{end_hour}")
        self.tz = tz
        self.start_hour = start_hour
        self.end_hour = end_hour

    @classmethod
    def from_settings(cls, settings) -> "TimeGrid":
        return cls(
            settings.tzinfo,
            start_hour=settings.business_start_hour,
            end_hour=settings.business_end_hour,
        )

    @property
    def slot_count(self) -> int:
        return (self.end_hour - self.start_hour) * 60 // config.SLOT_MINUTES

    def origin(self, day: date) -> datetime:
        """Instant of row 0 on a given local day."""
        return datetime.combine(day, time.min, tzinfo=self.tz) + timedelta(hours=self.start_hour)

    def slot_index(self, instant: datetime, window_start: datetime) -> int:
        """
        Zero-based slot offset of instant from the first row of window_start's day.

        Floors, so every instant inside a slot maps to that slot and the
        result is monotonic non-decreasing in instant.
        """
        origin = self.origin(_local_day(window_start, self.tz))
        elapsed = instant.astimezone(timezone.utc) - origin.astimezone(timezone.utc)
        elapsed_minutes = elapsed.total_seconds() / 60
        return math.floor(elapsed_minutes / config.SLOT_MINUTES)

    def slot_start(self, day: date, index: int) -> datetime:
        """Inverse of slot_index: start instant of a clicked row."""
        return self.origin(day) + timedelta(minutes=index * config.SLOT_MINUTES)

    def layout(self, appointment: Appointment, window_start: Optional[datetime] = None) -> SlotLayout:
        """
        Vertical layout of an appointment.

        Args:
            appointment: Appointment to place
            window_start: Day the column represents (default: the appointment's own day)
        """
        if window_start is None:
            window_start = appointment.start
        return SlotLayout(
            offset_slots=self.slot_index(appointment.start, window_start),
            span_slots=span_slots(appointment.duration_minutes),
        )

    def clip(self, slot_layout: SlotLayout) -> Optional[SlotLayout]:
        """Part of a layout inside the rendered rows, or None if fully outside."""
        top = max(0, slot_layout.offset_slots)
        bottom = min(self.slot_count, slot_layout.end_slot)
        if bottom <= top:
            return None
        return SlotLayout(offset_slots=top, span_slots=bottom - top)

    def row_labels(self) -> List[str]:
        """'HH:MM' label per row."""
        labels = []
        for index in range(self.slot_count):
            minutes = self.start_hour * 60 + index * config.SLOT_MINUTES
            labels.append(f"{minutes // 60:02d}:{minutes % 60:02d}")
        return labels

    def _place(self, appointments: Iterable[Appointment], day: date) -> List[Placement]:
        origin = self.origin(day)
        placements = [
            Placement(
                appointment=appointment,
                offset_slots=self.slot_index(appointment.start, origin),
                span_slots=span_slots(appointment.duration_minutes),
            )
            for appointment in appointments
        ]
        return assign_lanes(placements)

    def day_columns(
        self,
        window: TimeWindow,
        staff: Sequence[StaffMember],
        visibility: VisibilitySet,
        appointments: Iterable[Appointment],
    ) -> List[GridColumn]:
        """One column per visible staff member for the window's first day."""
        day = _local_day(window.start, self.tz)
        on_day = [a for a in appointments if _local_day(a.start, self.tz) == day]

        columns = []
        for member in visibility.filter(staff):
            mine = [a for a in on_day if a.staff_id == member.id]
            columns.append(GridColumn(
                key=member.id,
                label=member.display_name,
                subtitle=member.specialty,
                day=day,
                placements=self._place(mine, day),
            ))
        return columns

    def week_columns(
        self,
        window: TimeWindow,
        staff: Sequence[StaffMember],
        visibility: VisibilitySet,
        appointments: Iterable[Appointment],
    ) -> List[GridColumn]:
        """One column per day, aggregating every visible staff member."""
        visible_ids = {member.id for member in visibility.filter(staff)}
        shown = [a for a in appointments if a.staff_id in visible_ids]

        columns = []
        for day in window.days():
            on_day = [a for a in shown if _local_day(a.start, self.tz) == day]
            columns.append(GridColumn(
                key=day,
                label=f"{day:%a} {day.day}",
                day=day,
                placements=self._place(on_day, day),
            ))
        return columns
