"""Tests for the time grid model."""
from datetime import date, datetime, timedelta, timezone

import pytest

from salon_calendar.grid import Placement, SlotLayout, TimeGrid, assign_lanes, span_slots
from salon_calendar.models import Appointment, TimeWindow, VisibilitySet


def appointment(id, start, duration=30, staff_id=1, status="Scheduled"):
    return Appointment(
        id=id, client_id=100, staff_id=staff_id, service_id=10,
        start=start, duration_minutes=duration, status=status,
    )


@pytest.fixture
def grid():
    return TimeGrid(timezone.utc)


@pytest.fixture
def business_grid():
    return TimeGrid(timezone.utc, start_hour=9, end_hour=18)


class TestSlotIndex:

    def test_full_day_grid_has_48_slots(self, grid):
        assert grid.slot_count == 48

    @pytest.mark.parametrize("hour,minute,expected", [
        (0, 0, 0),
        (9, 0, 18),
        (9, 15, 18),
        (9, 30, 19),
        (23, 30, 47),
    ])
    def test_maps_instant_to_slot(self, grid, at, hour, minute, expected):
        assert grid.slot_index(at(hour, minute), at(0)) == expected

    def test_window_start_time_of_day_is_ignored(self, grid, at):
        # Offsets are measured from the window's day boundary
        assert grid.slot_index(at(9), at(14, 30)) == 18

    def test_not_clamped_outside_the_day(self, grid, at):
        assert grid.slot_index(at(23, 30, day=9), at(0)) == -1
        assert grid.slot_index(at(0, 0, day=11), at(0)) == 48

    def test_monotonic_non_decreasing(self, grid, at):
        instants = [at(0) + timedelta(minutes=7 * i) for i in range(-20, 250)]
        indexes = [grid.slot_index(i, at(0)) for i in instants]
        assert indexes == sorted(indexes)

    def test_business_hours_offsets(self, business_grid, at):
        assert business_grid.slot_count == 18
        assert business_grid.slot_index(at(9), at(0)) == 0
        assert business_grid.slot_index(at(8), at(0)) == -2
        assert business_grid.slot_index(at(18), at(0)) == 18

    def test_other_timezone_uses_local_day(self, at):
        tz = timezone(timedelta(hours=-5))
        grid = TimeGrid(tz)
        # 14:00 UTC is 09:00 at UTC-5
        assert grid.slot_index(at(14), datetime(2024, 1, 10, tzinfo=tz)) == 18


class TestLayout:

    @pytest.mark.parametrize("duration,expected", [
        (5, 1),
        (30, 1),
        (31, 2),
        (45, 2),
        (60, 2),
        (90, 3),
    ])
    def test_span_rounds_up(self, duration, expected):
        assert span_slots(duration) == expected

    def test_layout_of_45_minute_service(self, grid, at):
        layout = grid.layout(appointment(1, at(10), duration=45), at(0))
        assert layout == SlotLayout(offset_slots=20, span_slots=2)
        assert layout.end_slot == 22

    def test_layout_defaults_to_own_day(self, grid, at):
        assert grid.layout(appointment(1, at(10, 30))).offset_slots == 21

    def test_clip(self, business_grid):
        assert business_grid.clip(SlotLayout(-2, 4)) == SlotLayout(0, 2)
        assert business_grid.clip(SlotLayout(16, 4)) == SlotLayout(16, 2)
        assert business_grid.clip(SlotLayout(-4, 2)) is None
        assert business_grid.clip(SlotLayout(18, 1)) is None

    def test_slot_start_is_inverse_of_slot_index(self, business_grid, at):
        day = date(2024, 1, 10)
        for index in range(business_grid.slot_count):
            start = business_grid.slot_start(day, index)
            assert business_grid.slot_index(start, at(0)) == index
        assert business_grid.slot_start(day, 1) == at(9, 30)

    def test_row_labels(self, grid, business_grid):
        labels = grid.row_labels()
        assert len(labels) == 48
        assert labels[0] == "00:00"
        assert labels[19] == "09:30"
        assert labels[-1] == "23:30"
        assert business_grid.row_labels()[0] == "09:00"

    @pytest.mark.parametrize("start,end", [(9, 9), (10, 9), (-1, 10), (0, 25)])
    def test_invalid_hours(self, start, end):
        with pytest.raises(ValueError):
            TimeGrid(timezone.utc, start_hour=start, end_hour=end)


class TestLanes:

    def place(self, id, offset, span):
        return Placement(appointment=appointment(id, datetime(2024, 1, 10, tzinfo=timezone.utc)),
                         offset_slots=offset, span_slots=span)

    def test_overlapping_placements_share_width(self):
        placed = assign_lanes([self.place(1, 18, 2), self.place(2, 19, 1)])
        assert [(p.appointment.id, p.lane, p.lanes) for p in placed] == [(1, 0, 2), (2, 1, 2)]

    def test_back_to_back_placements_use_one_lane(self):
        placed = assign_lanes([self.place(1, 18, 1), self.place(2, 19, 1)])
        assert all(p.lane == 0 and p.lanes == 1 for p in placed)

    def test_freed_lane_is_reused_within_cluster(self):
        placed = assign_lanes([
            self.place(1, 0, 4),
            self.place(2, 0, 1),
            self.place(3, 1, 1),
        ])
        lanes = {p.appointment.id: (p.lane, p.lanes) for p in placed}
        assert lanes == {1: (0, 2), 2: (1, 2), 3: (1, 2)}


class TestColumns:

    def test_day_columns_one_per_visible_staff(self, grid, staff, at):
        window = TimeWindow.day(date(2024, 1, 10), timezone.utc)
        appointments = [
            appointment(1, at(9), staff_id=1),
            appointment(2, at(10), staff_id=2),
            appointment(3, at(11), staff_id=3),
            appointment(4, at(9, day=11), staff_id=1),  # other day
        ]
        columns = grid.day_columns(window, staff, VisibilitySet([1, 2]), appointments)

        assert [c.key for c in columns] == [1, 2]
        assert columns[0].label == "Sofia Reyes"
        assert columns[0].subtitle == "Color"
        assert [p.appointment.id for p in columns[0].placements] == [1]
        assert columns[0].placements[0].offset_slots == 18
        assert [p.appointment.id for p in columns[1].placements] == [2]

    def test_week_columns_aggregate_visible_staff(self, grid, staff, at):
        window = TimeWindow.week(date(2024, 1, 10), timezone.utc)
        appointments = [
            appointment(1, at(9), staff_id=1),
            appointment(2, at(9), staff_id=2),
            appointment(3, at(9), staff_id=3),
            appointment(4, at(15, day=12), staff_id=1),
        ]
        columns = grid.week_columns(window, staff, VisibilitySet([1, 2]), appointments)

        assert len(columns) == 7
        assert columns[0].label == "Sun 7"
        wednesday = columns[3]
        assert wednesday.day == date(2024, 1, 10)
        assert sorted(p.appointment.id for p in wednesday.placements) == [1, 2]
        assert all(p.lanes == 2 for p in wednesday.placements)
        assert [p.appointment.id for p in columns[5].placements] == [4]
