"""
Shared fixtures: a throwaway SQLite database per test, a booking service
wired to an in-memory notification sink, and a seeded 24-hour location.
"""
import os

# Must be set before any app module builds settings or the module engine
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["EXPIRY_SWEEP_INTERVAL_SECONDS"] = "0"

from datetime import datetime

import pytest

from app.config import Settings
from app.database import create_engine_for, create_session_maker, init_db
from app.services.booking_service import (
    BookingService,
    LocationSpec,
    SpaceSpec,
    VehicleInfo,
)
from app.services.notifications import InMemoryNotificationSink

ADMIN_KEY = "test-admin-key"
ADMIN_ID = "admin-1"
NOW = datetime(2026, 3, 2, 9, 0)


def at(hour: int, minute: int = 0, day: int = 2) -> datetime:
    """Wall-clock instant on the test day (March 2026)."""
    return datetime(2026, 3, day, hour, minute)


def car(plate: str = "BA 1 PA 1234") -> VehicleInfo:
    return VehicleInfo(plate_number=plate, vehicle_type="car", make="Toyota", model="Corolla")


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        admin_api_key=ADMIN_KEY,
        expiry_sweep_interval_seconds=0,
    )


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest.fixture
def sink():
    return InMemoryNotificationSink()


@pytest.fixture
def service(session_maker, sink, settings):
    return BookingService(session_maker, sink=sink, settings=settings)


@pytest.fixture
async def location(service, sink):
    location = await service.create_location(
        LocationSpec(
            name="Durbar Marg Parking",
            address="Durbar Marg, Kathmandu",
            hourly_rate=100.0,
            is_24_hours=True,
            spaces=[
                SpaceSpec("A1", "regular", level="G", section="A"),
                SpaceSpec("A2", "ev-charging", level="G", section="A"),
                SpaceSpec("A3", "regular", level="G", section="A"),
                SpaceSpec("B1", "handicapped", level="1", section="B"),
            ],
            admin_ids=[ADMIN_ID],
        )
    )
    sink.clear()
    return location


@pytest.fixture
def book(service, location):
    """Create a booking on the seeded location with sensible defaults."""

    async def _book(
        start: datetime,
        end: datetime,
        space_id: str = "A1",
        user_id: str = "user-1",
        payment_method: str = "cash",
        now: datetime = NOW,
    ):
        return await service.create_booking(
            user_id=user_id,
            location_id=location.id,
            space_id=space_id,
            vehicle=car(),
            start_time=start,
            end_time=end,
            payment_method=payment_method,
            now=now,
        )

    return _book
