"""
Tests for the per-space lock, write retries, concurrent booking attempts
and notification delivery failures.
"""
import asyncio
import itertools

import pytest
from sqlalchemy.exc import OperationalError

from conftest import NOW, at, car
from app import database
from app.core.exceptions import ConflictError, SpaceLockTimeoutError
from app.core.space_lock import _get_lock, space_key, space_lock, space_locks
from app.services.booking_service import BookingService


async def test_space_lock_times_out_when_held():
    async with space_lock("loc-1", "A1"):
        with pytest.raises(SpaceLockTimeoutError) as exc_info:
            async with space_lock("loc-1", "A1", timeout=0.05):
                pass

    assert exc_info.value.status_code == 503
    assert exc_info.value.details["space_id"] == "A1"


async def test_space_locks_are_independent_per_space():
    async with space_lock("loc-1", "A1"):
        async with space_lock("loc-1", "A2", timeout=0.05):
            pass
        async with space_lock("loc-2", "A1", timeout=0.05):
            pass


async def test_space_lock_serializes_holders():
    order = []

    async def worker(name):
        async with space_lock("loc-1", "A1"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order in (
        ["a-in", "a-out", "b-in", "b-out"],
        ["b-in", "b-out", "a-in", "a-out"],
    )


async def test_space_locks_hold_every_space():
    async with space_locks("loc-1", ["B1", "A1", "A1"]):
        with pytest.raises(SpaceLockTimeoutError):
            async with space_lock("loc-1", "A1", timeout=0.05):
                pass
        with pytest.raises(SpaceLockTimeoutError):
            async with space_lock("loc-1", "B1", timeout=0.05):
                pass


def test_space_lock_registry_is_per_event_loop():
    async def lock_for_a1():
        return _get_lock(space_key("loc-1", "A1"))

    first_loop = asyncio.new_event_loop()
    second_loop = asyncio.new_event_loop()
    try:
        first = first_loop.run_until_complete(lock_for_a1())
        again = first_loop.run_until_complete(lock_for_a1())
        second = second_loop.run_until_complete(lock_for_a1())
    finally:
        first_loop.close()
        second_loop.close()

    assert first is again
    assert first is not second


async def test_with_db_retry_retries_transient_errors(monkeypatch):
    monkeypatch.setattr(database, "_retry_delay", lambda attempt: 0)
    attempts = itertools.count(1)

    async def flaky():
        if next(attempts) < 3:
            raise OperationalError("UPDATE parking_spaces", {}, Exception("database is locked"))
        return "ok"

    assert await database.with_db_retry("flaky", flaky, max_attempts=3) == "ok"


async def test_with_db_retry_gives_up(monkeypatch):
    monkeypatch.setattr(database, "_retry_delay", lambda attempt: 0)
    calls = []

    async def always_locked():
        calls.append(1)
        raise OperationalError("UPDATE parking_spaces", {}, Exception("database is locked"))

    with pytest.raises(OperationalError):
        await database.with_db_retry("always_locked", always_locked, max_attempts=2)
    assert len(calls) == 2


async def test_with_db_retry_does_not_retry_domain_errors():
    calls = []

    async def conflict():
        calls.append(1)
        raise ConflictError("taken")

    with pytest.raises(ConflictError):
        await database.with_db_retry("conflict", conflict, max_attempts=3)
    assert len(calls) == 1


async def test_concurrent_overlapping_requests_admit_one(service, location, book):
    results = await asyncio.gather(
        *[book(at(10), at(12), user_id=f"user-{i}") for i in range(5)],
        return_exceptions=True,
    )

    confirmed = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(confirmed) == 1
    assert len(rejected) == 4
    assert all(isinstance(r, ConflictError) for r in rejected)

    _, items = await service.list_bookings(location_id=location.id, status="confirmed", now=NOW)
    assert len(items) == 1


async def test_concurrent_extensions_do_not_overlap(service, location, book):
    first = await book(at(10), at(12))
    second = await book(at(14), at(16), user_id="user-2")

    results = await asyncio.gather(
        service.extend_booking(first.id, "user-1", at(13), now=NOW),
        book(at(12), at(14), user_id="user-3"),
        return_exceptions=True,
    )

    assert sum(1 for r in results if isinstance(r, ConflictError)) == 1

    _, items = await service.list_bookings(location_id=location.id, status="confirmed", now=NOW)
    windows = sorted((b.start_time, b.end_time) for b in items if b.space_id == "A1")
    for (_, end), (start, _) in zip(windows, windows[1:]):
        assert end <= start
    assert second.id in {b.id for b in items}


async def test_booking_times_out_while_space_is_held(session_maker, settings, location):
    service = BookingService(
        session_maker,
        settings=settings.model_copy(
            update={"space_lock_timeout_seconds": 0.05, "booking_write_max_attempts": 1}
        ),
    )

    async with space_lock(location.id, "A1"):
        with pytest.raises(SpaceLockTimeoutError):
            await service.create_booking(
                "user-1", location.id, "A1", car(), at(10), at(12), "cash", now=NOW,
            )


async def test_failing_sink_does_not_fail_the_write(session_maker, settings, location):
    class BrokenSink:
        async def publish(self, event):
            raise RuntimeError("socket closed")

    service = BookingService(session_maker, sink=BrokenSink(), settings=settings)

    booking = await service.create_booking(
        "user-1", location.id, "A1", car(), at(10), at(12), "cash", now=NOW,
    )

    stored = await service.get_booking(booking.id, now=NOW)
    assert stored.status == "confirmed"
