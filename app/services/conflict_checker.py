"""
Conflict checker: the single authority on whether a window is free on a space.

A booking conflicts with a window when its status holds the space
(confirmed or active) and its [start_time, end_time) overlaps the window.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.time_range import TimeRange
from app.models.booking import BLOCKING_STATUSES, Booking, BookingStatus
from app.models.location import ParkingLocation, ParkingSpace, SpaceStatus
from app.services.pricing import PricingEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    end: datetime
    available: bool
    price: float


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def operating_window(location: ParkingLocation, day: date) -> TimeRange:
    """Operating hours of ``location`` on its local ``day`` as a naive-UTC window."""
    day_start = datetime.combine(day, time.min)
    if location.is_24_hours:
        opening, closing = day_start, day_start + timedelta(days=1)
    else:
        opening = datetime.combine(day, _parse_hhmm(location.opening_time))
        closing = datetime.combine(day, _parse_hhmm(location.closing_time))
        if closing <= opening:
            # Overnight hours close on the following day
            closing += timedelta(days=1)
    return TimeRange(location.utc_time(opening), location.utc_time(closing))


class ConflictChecker:
    """Read-only queries over the reservation timeline of a space."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_conflicts(
        self,
        location_id: uuid.UUID,
        space_id: str,
        window: TimeRange,
        exclude_booking_id: Optional[uuid.UUID] = None,
    ) -> List[Booking]:
        """All confirmed/active bookings on the space overlapping ``window``."""
        filters = [
            Booking.location_id == location_id,
            Booking.space_id == space_id,
            Booking.status.in_(BLOCKING_STATUSES),
            Booking.start_time < window.end,
            Booking.end_time > window.start,
        ]
        if exclude_booking_id is not None:
            filters.append(Booking.id != exclude_booking_id)

        query = select(Booking).where(and_(*filters)).order_by(Booking.start_time)
        result = await self.db.execute(query)
        conflicts = list(result.scalars().all())
        if conflicts:
            logger.info(
                "Window %s - %s on %s/%s conflicts with %d booking(s)",
                window.start.isoformat(),
                window.end.isoformat(),
                location_id,
                space_id,
                len(conflicts),
            )
        return conflicts

    async def find_covering(
        self,
        location_id: uuid.UUID,
        at: datetime,
        space_id: Optional[str] = None,
    ) -> List[Booking]:
        """Confirmed/active bookings whose window contains ``at`` (start <= at <= end)."""
        filters = [
            Booking.location_id == location_id,
            Booking.status.in_(BLOCKING_STATUSES),
            Booking.start_time <= at,
            Booking.end_time >= at,
        ]
        if space_id is not None:
            filters.append(Booking.space_id == space_id)

        result = await self.db.execute(select(Booking).where(and_(*filters)))
        return list(result.scalars().all())

    async def find_holders(
        self,
        location_id: uuid.UUID,
        space_id: str,
        now: Optional[datetime] = None,
        exclude_booking_id: Optional[uuid.UUID] = None,
    ) -> List[Booking]:
        """
        Bookings still holding the space at ``now``: any active one, or a
        confirmed one not yet over. Without ``now``, every confirmed or
        active booking on the space, including overdue ones not yet expired.
        """
        filters = [
            Booking.location_id == location_id,
            Booking.space_id == space_id,
        ]
        if now is None:
            filters.append(Booking.status.in_(BLOCKING_STATUSES))
        else:
            filters.append(
                or_(
                    Booking.status == BookingStatus.ACTIVE.value,
                    and_(
                        Booking.status == BookingStatus.CONFIRMED.value,
                        Booking.end_time > now,
                    ),
                )
            )
        if exclude_booking_id is not None:
            filters.append(Booking.id != exclude_booking_id)

        result = await self.db.execute(
            select(Booking).where(and_(*filters)).order_by(Booking.start_time)
        )
        return list(result.scalars().all())

    async def available_slots(
        self,
        location: ParkingLocation,
        space: ParkingSpace,
        day: date,
        pricing: PricingEngine,
        slot_minutes: int = 60,
    ) -> List[TimeSlot]:
        """Partition the day's operating hours into fixed-width slots."""
        window = operating_window(location, day)
        bookings = await self.find_conflicts(location.id, space.space_id, window)
        return build_slots(
            window,
            bookings,
            hourly_rate=location.hourly_rate,
            space_type=space.type,
            pricing=pricing,
            slot_minutes=slot_minutes,
            blocked=space.status == SpaceStatus.MAINTENANCE,
        )


def build_slots(
    window: TimeRange,
    bookings: Sequence[Booking],
    hourly_rate: float,
    space_type: str,
    pricing: PricingEngine,
    slot_minutes: int = 60,
    blocked: bool = False,
) -> List[TimeSlot]:
    """Slots across ``window``; a slot is unavailable if any booking overlaps it."""
    if slot_minutes <= 0:
        raise ValueError("slot_minutes must be positive")

    step = timedelta(minutes=slot_minutes)
    slots = []
    cursor = window.start
    while cursor < window.end:
        slot = TimeRange(cursor, min(cursor + step, window.end))
        taken = blocked or any(b.time_range.overlaps(slot) for b in bookings)
        slots.append(
            TimeSlot(
                start=slot.start,
                end=slot.end,
                available=not taken,
                price=pricing.base_amount(slot, hourly_rate, space_type),
            )
        )
        cursor = slot.end
    return slots
