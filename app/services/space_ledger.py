"""
Space status ledger.

Single writer of ``ParkingSpace.status``. Every mutation recounts the
location's stored ``available_spaces`` in the same transaction.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.exceptions import (
    ActiveBookingConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
)
from app.models.booking import BookingStatus
from app.models.location import ParkingLocation, ParkingSpace, SpaceStatus
from app.services.conflict_checker import ConflictChecker

logger = logging.getLogger(__name__)


@dataclass
class SpaceStatusChange:
    space_id: str
    old_status: str
    new_status: str


@dataclass
class BulkStatusResult:
    updated: List[SpaceStatusChange]
    errors: List[Dict[str, str]]


def parse_space_status(value: str) -> SpaceStatus:
    try:
        return SpaceStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in SpaceStatus)
        raise ValidationError(
            f"Invalid space status '{value}'. Must be one of: {allowed}",
            details={"status": value},
        )


class SpaceAvailabilityLedger:
    """Reads and writes space status within a caller-owned transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.conflicts = ConflictChecker(db)

    async def get_location(self, location_id: uuid.UUID) -> ParkingLocation:
        location = await self.db.get(ParkingLocation, location_id)
        if location is None:
            raise NotFoundError(
                "Parking location not found",
                details={"location_id": str(location_id)},
            )
        return location

    async def lock_space(self, location_id: uuid.UUID, space_id: str) -> ParkingSpace:
        """Row-lock the space for the rest of the transaction."""
        query = (
            select(ParkingSpace)
            .where(
                ParkingSpace.location_id == location_id,
                ParkingSpace.space_id == space_id,
            )
            .with_for_update()
        )
        result = await self.db.execute(query)
        space = result.scalar_one_or_none()
        if space is None:
            raise NotFoundError(
                "Parking space not found",
                details={"location_id": str(location_id), "space_id": space_id},
            )
        return space

    async def lock_spaces(self, location_id: uuid.UUID, space_ids: Sequence[str]) -> List[ParkingSpace]:
        """Row-lock every existing space in ``space_ids``; unknown ids are skipped."""
        query = (
            select(ParkingSpace)
            .where(
                ParkingSpace.location_id == location_id,
                ParkingSpace.space_id.in_(list(space_ids)),
            )
            .order_by(ParkingSpace.space_id)
            .with_for_update()
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    def require_space(self, location: ParkingLocation, space_id: str) -> ParkingSpace:
        space = location.get_space(space_id)
        if space is None:
            raise NotFoundError(
                "Parking space not found",
                details={"location_id": str(location.id), "space_id": space_id},
            )
        return space

    async def _guard_maintenance(self, location: ParkingLocation, space_id: str, now: datetime) -> None:
        covering = await self.conflicts.find_covering(location.id, now, space_id=space_id)
        if covering:
            raise ActiveBookingConflictError(
                f"Space {space_id} has a current booking and cannot be put under maintenance",
                booking_ids=[b.id for b in covering],
            )

    async def set_status(
        self,
        location: ParkingLocation,
        space_id: str,
        new_status: str,
        now: datetime,
        recount: bool = True,
    ) -> SpaceStatusChange:
        status = parse_space_status(new_status)
        space = self.require_space(location, space_id)

        if status == SpaceStatus.MAINTENANCE and space.status != SpaceStatus.MAINTENANCE:
            await self._guard_maintenance(location, space_id, now)

        change = SpaceStatusChange(space_id, space.status, status.value)
        space.status = status.value
        space.status_updated_at = now
        if recount:
            location.recount_available()
        logger.info(
            "Space %s/%s: %s -> %s",
            location.id,
            space_id,
            change.old_status,
            change.new_status,
        )
        return change

    async def release_if_held(
        self,
        location: ParkingLocation,
        space_id: str,
        now: datetime,
        released_booking_id: Optional[uuid.UUID] = None,
        held: Sequence[SpaceStatus] = (SpaceStatus.RESERVED, SpaceStatus.OCCUPIED),
    ) -> Optional[SpaceStatusChange]:
        """
        Settle a booking-held space once ``released_booking_id`` lets go of it.

        The space becomes occupied while another booking is checked in on it,
        reserved while another confirmed booking is still ahead, and available
        otherwise. Maintenance is left alone.
        """
        space = self.require_space(location, space_id)
        if space.status not in {s.value for s in held}:
            return None

        holders = await self.conflicts.find_holders(
            location.id, space_id, now, exclude_booking_id=released_booking_id
        )
        if any(b.status == BookingStatus.ACTIVE for b in holders):
            target = SpaceStatus.OCCUPIED
        elif holders:
            target = SpaceStatus.RESERVED
        else:
            target = SpaceStatus.AVAILABLE
        if space.status == target:
            return None
        return await self.set_status(location, space_id, target.value, now)

    async def set_many(
        self,
        location: ParkingLocation,
        updates: Sequence[Dict[str, str]],
        now: datetime,
    ) -> BulkStatusResult:
        """Apply each update independently; recount once at the end."""
        updated: List[SpaceStatusChange] = []
        errors: List[Dict[str, str]] = []
        for update in updates:
            space_id = update.get("space_id", "")
            try:
                change = await self.set_status(
                    location, space_id, update.get("status", ""), now, recount=False
                )
            except DomainError as exc:
                errors.append({"space_id": space_id, "code": exc.code, "message": exc.message})
                continue
            updated.append(change)

        location.recount_available()
        return BulkStatusResult(updated=updated, errors=errors)
