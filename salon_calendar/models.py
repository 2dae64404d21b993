"""Data model for the scheduling core.

Pydantic models for records read from the backend; VisibilitySet is plain
mutable view state.
"""
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from salon_calendar.config import STATUS_LABELS


class AppointmentStatus(str, Enum):
    """Lifecycle states of an appointment."""
    SCHEDULED = "scheduled"
    CHECKED_IN = "checked-in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value) -> "AppointmentStatus":
        """
        Parse a status as stored by the backend.

        Backend rows use "Scheduled", "Checked-in", ... so matching is
        case-insensitive.

        Raises:
            ValueError: If the value is not a known status
        """
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("_", "-")
        if normalized == "checkedin":
            normalized = "checked-in"
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown appointment status: {value!r}") from None

    @property
    def label(self) -> str:
        """Backend spelling ("Checked-in")."""
        return STATUS_LABELS[self.value]

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


def _require_aware(value: datetime, field_name: str) -> datetime:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{field_name} must be timezone-aware")
    return value


class Appointment(BaseModel):
    """One booked appointment as confirmed by the backend."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Backend appointment id")
    client_id: int
    staff_id: int
    service_id: int
    start: datetime = Field(..., description="Timezone-aware start, minute granularity")
    duration_minutes: int = Field(..., gt=0, description="Frozen at booking time")
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: Optional[str] = None

    # Denormalised display fields (joined by the backend when available)
    client_name: Optional[str] = None
    staff_name: Optional[str] = None
    service_name: Optional[str] = None

    @field_validator("start")
    @classmethod
    def validate_start(cls, v):
        _require_aware(v, "start")
        if v.second or v.microsecond:
            raise ValueError("start must have minute granularity")
        return v

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        return AppointmentStatus.parse(v)

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    @property
    def is_active(self) -> bool:
        """Cancelled appointments free their slot."""
        return self.status != AppointmentStatus.CANCELLED


class StaffMember(BaseModel):
    """Staff member as listed by the staff directory."""
    model_config = ConfigDict(frozen=True)

    id: int
    first_name: str
    last_name: Optional[str] = None
    specialty: Optional[str] = None

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class Service(BaseModel):
    """Bookable salon service."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str = Field(..., min_length=1)
    duration_minutes: int = Field(..., gt=0)
    price: float = Field(default=0.0, ge=0)
    category: Optional[str] = None


class Client(BaseModel):
    """Salon client."""
    model_config = ConfigDict(frozen=True)

    id: int
    first_name: str
    last_name: Optional[str] = None
    phone_number: Optional[str] = None

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class ViewType(str, Enum):
    """Calendar views."""
    DAY = "day"
    WEEK = "week"


def _week_start(day: date) -> date:
    # Sunday-started weeks; date.weekday() has Monday == 0
    return day - timedelta(days=(day.weekday() + 1) % 7)


class TimeWindow(BaseModel):
    """
    Contiguous time range currently loaded into the store.

    Bounds are half-open: [start, end). Build with TimeWindow.day() or
    TimeWindow.week() so the bounds fall on local midnights.
    """
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    view: ViewType = ViewType.DAY

    @field_validator("start", "end")
    @classmethod
    def validate_aware(cls, v, info):
        return _require_aware(v, info.field_name)

    @model_validator(mode="after")
    def check_order(self):
        if self.start >= self.end:
            raise ValueError("window start must be before window end")
        return self

    @classmethod
    def day(cls, day: date, tz: tzinfo) -> "TimeWindow":
        start = datetime.combine(day, time.min, tzinfo=tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
        return cls(start=start, end=end, view=ViewType.DAY)

    @classmethod
    def week(cls, day: date, tz: tzinfo) -> "TimeWindow":
        first = _week_start(day)
        start = datetime.combine(first, time.min, tzinfo=tz)
        end = datetime.combine(first + timedelta(days=7), time.min, tzinfo=tz)
        return cls(start=start, end=end, view=ViewType.WEEK)

    @classmethod
    def for_view(cls, view: ViewType, day: date, tz: tzinfo) -> "TimeWindow":
        if ViewType(view) == ViewType.WEEK:
            return cls.week(day, tz)
        return cls.day(day, tz)

    @property
    def tz(self) -> tzinfo:
        return self.start.tzinfo

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def days(self) -> List[date]:
        """Local dates covered by the window."""
        first = self.start.date()
        count = (self.end.date() - first).days
        return [first + timedelta(days=i) for i in range(count)]

    def shift(self, periods: int) -> "TimeWindow":
        """Previous/next day or week (negative periods go back)."""
        step = 7 if self.view == ViewType.WEEK else 1
        anchor = self.start.date() + timedelta(days=step * periods)
        return TimeWindow.for_view(self.view, anchor, self.tz)


class VisibilitySet:
    """
    Staff ids currently shown on the grid.

    View state only: conflict detection ignores it.
    """

    def __init__(self, staff_ids: Optional[Iterable[int]] = None):
        self._ids = set(staff_ids or [])
        self._initialized = staff_ids is not None

    @property
    def ids(self) -> frozenset:
        return frozenset(self._ids)

    def initialize(self, staff: Iterable[StaffMember]) -> None:
        """Show everyone the first time the staff list arrives."""
        if not self._initialized:
            self._ids = {member.id for member in staff}
            self._initialized = True

    def is_visible(self, staff_id: int) -> bool:
        return staff_id in self._ids

    def toggle(self, staff_id: int) -> bool:
        """Flip one staff member; returns the new visibility."""
        self._initialized = True
        if staff_id in self._ids:
            self._ids.discard(staff_id)
            return False
        self._ids.add(staff_id)
        return True

    def show_all(self, staff: Iterable[StaffMember]) -> None:
        self._ids = {member.id for member in staff}
        self._initialized = True

    def hide_all(self) -> None:
        self._ids.clear()
        self._initialized = True

    def filter(self, staff: Iterable[StaffMember]) -> List[StaffMember]:
        """Visible members, in directory order."""
        return [member for member in staff if member.id in self._ids]

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, staff_id) -> bool:
        return staff_id in self._ids
