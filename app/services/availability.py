"""
Availability projection for a parking location.

Availability is derived at a given instant from bookings whose window
contains that instant. The stored space status only contributes when a
space is under maintenance.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from app.models.booking import Booking
from app.models.location import ParkingLocation, SpaceStatus
from app.services.conflict_checker import ConflictChecker


@dataclass(frozen=True)
class OccupancyProjection:
    total_spaces: int
    available_spaces: int
    occupancy_percentage: int
    as_of: datetime


@dataclass
class SpaceView:
    space_id: str
    type: str
    status: str
    has_active_booking: bool
    real_time_status: str
    booking_id: Optional[str] = None


@dataclass
class LocationAvailability:
    location_id: str
    projection: OccupancyProjection
    is_currently_open: bool
    spaces: List[SpaceView] = field(default_factory=list)
    available_space_types: Dict[str, int] = field(default_factory=dict)


def occupancy_percentage(total_spaces: int, available_spaces: int) -> int:
    if total_spaces <= 0:
        return 0
    return round((total_spaces - available_spaces) / total_spaces * 100)


def project_occupancy(
    location: ParkingLocation,
    covering_bookings: Iterable[Booking],
    as_of: datetime,
) -> OccupancyProjection:
    """Pure projection from spaces plus bookings covering ``as_of``."""
    booked = {b.space_id for b in covering_bookings if b.start_time <= as_of <= b.end_time}
    total = len(location.spaces)
    unavailable = sum(
        1 for s in location.spaces
        if s.space_id in booked or s.status == SpaceStatus.MAINTENANCE
    )
    available = total - unavailable
    return OccupancyProjection(
        total_spaces=total,
        available_spaces=available,
        occupancy_percentage=occupancy_percentage(total, available),
        as_of=as_of,
    )


def project_spaces(
    location: ParkingLocation,
    covering_bookings: Iterable[Booking],
) -> List[SpaceView]:
    by_space = {b.space_id: b for b in covering_bookings}
    views = []
    for space in location.spaces:
        booking = by_space.get(space.space_id)
        if space.status == SpaceStatus.MAINTENANCE:
            real_time = SpaceStatus.MAINTENANCE.value
        elif booking is not None:
            real_time = SpaceStatus.OCCUPIED.value
        else:
            real_time = SpaceStatus.AVAILABLE.value
        views.append(
            SpaceView(
                space_id=space.space_id,
                type=space.type,
                status=space.status,
                has_active_booking=booking is not None,
                real_time_status=real_time,
                booking_id=str(booking.id) if booking is not None else None,
            )
        )
    return views


class AvailabilityProjector:
    """Loads covering bookings and projects availability for a location."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conflicts = ConflictChecker(db)

    async def project(self, location: ParkingLocation, as_of: datetime) -> OccupancyProjection:
        covering = await self.conflicts.find_covering(location.id, as_of)
        return project_occupancy(location, covering, as_of)

    async def location_availability(
        self,
        location: ParkingLocation,
        as_of: datetime,
    ) -> LocationAvailability:
        covering = await self.conflicts.find_covering(location.id, as_of)
        spaces = project_spaces(location, covering)
        by_type: Dict[str, int] = {}
        for view in spaces:
            if view.real_time_status == SpaceStatus.AVAILABLE:
                by_type[view.type] = by_type.get(view.type, 0) + 1
        return LocationAvailability(
            location_id=str(location.id),
            projection=project_occupancy(location, covering, as_of),
            is_currently_open=location.is_open_at(as_of),
            spaces=spaces,
            available_space_types=by_type,
        )
