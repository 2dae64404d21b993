"""Tests for the window-scoped appointment store."""
import asyncio
from datetime import date, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from salon_calendar.errors import DataAccessError
from salon_calendar.models import AppointmentStatus, TimeWindow
from salon_calendar.store import AppointmentStore
from tests.conftest import calls_named


@pytest.fixture
def day_window():
    return TimeWindow.day(date(2024, 1, 10), timezone.utc)


@pytest.fixture
def store(backend):
    return AppointmentStore(backend)


@pytest.mark.asyncio
async def test_load_window_keeps_only_window_appointments(store, backend, day_window, at):
    inside = backend.seed_appointment(1, at(9))
    backend.seed_appointment(1, at(9, day=11))

    loaded = await store.load_window(day_window)

    assert [a.id for a in loaded] == [inside.id]
    assert store.window == day_window
    assert await store.get(inside.id) == inside


@pytest.mark.asyncio
async def test_get_unknown_id_returns_none(store, day_window):
    await store.load_window(day_window)
    assert await store.get(424242) is None


@pytest.mark.asyncio
async def test_failed_load_keeps_previous_cache(store, backend, day_window, at):
    kept = backend.seed_appointment(1, at(9))
    await store.load_window(day_window)

    backend.failing.add("fetch")
    with pytest.raises(DataAccessError):
        await store.load_window(day_window.shift(1))

    assert store.window == day_window
    assert store.snapshot() == [kept]


@pytest.mark.asyncio
async def test_invalidate_reloads_on_next_read(store, backend, day_window, at):
    await store.load_window(day_window)
    added = backend.seed_appointment(2, at(11))

    assert store.snapshot() == []
    store.invalidate()
    assert store.is_stale

    assert [a.id for a in await store.appointments()] == [added.id]
    assert not store.is_stale
    assert len(calls_named(backend, "fetch")) == 2


@pytest.mark.asyncio
async def test_reads_without_invalidate_use_cache(store, backend, day_window):
    await store.load_window(day_window)
    await store.appointments()
    await store.get(1)
    assert len(calls_named(backend, "fetch")) == 1


@pytest.mark.asyncio
async def test_upsert_replaces_cached_entry(store, backend, day_window, at):
    original = backend.seed_appointment(1, at(9))
    await store.load_window(day_window)

    changed = original.model_copy(update={"status": AppointmentStatus.CHECKED_IN})
    store.upsert(changed)

    assert (await store.get(original.id)).status == AppointmentStatus.CHECKED_IN


@pytest.mark.asyncio
async def test_upsert_outside_window_is_dropped(store, backend, day_window, at):
    moved = backend.seed_appointment(1, at(9))
    await store.load_window(day_window)

    store.upsert(moved.model_copy(update={"start": at(9, day=12)}))

    assert await store.get(moved.id) is None


@pytest.mark.asyncio
async def test_fetch_range_leaves_cache_alone(store, backend, day_window, at):
    await store.load_window(day_window)
    other_day = backend.seed_appointment(1, at(9, day=12))

    fetched = await store.fetch_range((at(0, day=12), at(0, day=13)))

    assert fetched == [other_day]
    assert store.snapshot() == []
    assert store.window == day_window


class GatedPersistence:
    """Holds the first fetch until released."""

    def __init__(self, backend):
        self.backend = backend
        self.gate = asyncio.Event()
        self.held = False

    async def fetch_appointments(self, range):
        if not self.held:
            self.held = True
            await self.gate.wait()
        return await self.backend.fetch_appointments(range)


@pytest.mark.asyncio
async def test_superseded_load_does_not_overwrite_newer_window(backend, day_window, at):
    backend.seed_appointment(1, at(9))
    next_day = day_window.shift(1)
    persistence = GatedPersistence(backend)
    store = AppointmentStore(persistence)

    slow = asyncio.create_task(store.load_window(day_window))
    await asyncio.sleep(0)
    await store.load_window(next_day)
    persistence.gate.set()
    await slow

    assert store.window == next_day
    assert store.snapshot() == []


@pytest.mark.asyncio
async def test_superseded_load_returns_only_its_window(backend, day_window, at):
    inside = backend.seed_appointment(1, at(9))
    leaked = inside.model_copy(update={"id": 9, "start": at(9, day=11)})
    persistence = GatedPersistence(Mock(fetch_appointments=AsyncMock(return_value=[inside, leaked])))
    store = AppointmentStore(persistence)

    slow = asyncio.create_task(store.load_window(day_window))
    await asyncio.sleep(0)
    await store.load_window(day_window.shift(1))
    persistence.gate.set()

    assert [a.id for a in await slow] == [inside.id]


@pytest.mark.asyncio
async def test_refresh_does_not_supersede_pending_navigation(backend, day_window, at):
    moved_on = backend.seed_appointment(1, at(9, day=11))
    persistence = GatedPersistence(backend)
    persistence.held = True
    store = AppointmentStore(persistence)
    await store.load_window(day_window)
    persistence.held = False

    navigation = asyncio.create_task(store.load_window(day_window.shift(1)))
    await asyncio.sleep(0)

    assert await store.get(moved_on.id, refresh=True) is None
    persistence.gate.set()
    await navigation

    assert store.window == day_window.shift(1)
    assert store.snapshot() == [moved_on]


@pytest.mark.asyncio
async def test_refresh_returns_backend_state(store, backend, day_window, at):
    appointment = backend.seed_appointment(1, at(9))
    await store.load_window(day_window)
    backend.appointments[appointment.id] = appointment.model_copy(
        update={"status": AppointmentStatus.CANCELLED}
    )

    fresh = await store.get(appointment.id, refresh=True)

    assert fresh.status == AppointmentStatus.CANCELLED
    assert store.snapshot() == [fresh]
    assert not store.is_stale


class CommitDuringRead:
    """Invalidates the store while its fetch is in flight."""

    def __init__(self, backend):
        self.backend = backend
        self.store = None

    async def fetch_appointments(self, range):
        rows = await self.backend.fetch_appointments(range)
        self.store.invalidate()
        return rows


@pytest.mark.asyncio
async def test_read_overlapping_a_commit_stays_stale(backend, day_window):
    persistence = CommitDuringRead(backend)
    store = AppointmentStore(persistence)
    persistence.store = store

    await store.load_window(day_window)

    assert store.window == day_window
    assert store.is_stale
