"""
Parking location API router.
Provides endpoints for locations, real-time availability and space status.
"""
import uuid
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from app.core.time_range import as_utc_naive
from app.dependencies import get_user_id, verify_api_key
from app.schemas.booking import BookingListResponse, BookingResponse
from app.schemas.location import (
    BulkItemError,
    BulkSpaceStatusRequest,
    BulkSpaceStatusResponse,
    LocationAvailabilityResponse,
    LocationCreateRequest,
    LocationResponse,
    OccupancyResponse,
    SpaceAvailabilityResponse,
    SpaceStatusChangeResponse,
    SpaceStatusRequest,
    SpaceStatusResponse,
)
from app.services.booking_service import (
    BookingService,
    LocationSpec,
    SpaceSpec,
    get_booking_service,
)

router = APIRouter(prefix="/api/locations", tags=["Locations"])


@router.post("", response_model=LocationResponse, status_code=201)
async def create_location(
    request: LocationCreateRequest,
    _: str = Depends(verify_api_key),
    service: BookingService = Depends(get_booking_service),
):
    """
    Register a parking location with its spaces.
    Requires X-API-Key header for authentication.
    """
    location = await service.create_location(
        LocationSpec(
            name=request.name,
            address=request.address,
            hourly_rate=request.hourly_rate,
            spaces=[
                SpaceSpec(space_id=s.space_id, type=s.type, level=s.level, section=s.section)
                for s in request.spaces
            ],
            opening_time=request.opening_time,
            closing_time=request.closing_time,
            is_24_hours=request.is_24_hours,
            timezone=request.timezone,
            latitude=request.latitude,
            longitude=request.longitude,
            admin_ids=request.admin_ids,
        )
    )
    return LocationResponse.model_validate(location)


@router.get("/{location_id}", response_model=LocationResponse)
async def get_location(
    location_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
):
    """Get a parking location with its stored space status."""
    location = await service.get_location(location_id)
    return LocationResponse.model_validate(location)


@router.get("/{location_id}/occupancy", response_model=OccupancyResponse)
async def get_occupancy(
    location_id: uuid.UUID,
    as_of: Optional[datetime] = Query(None, description="Instant to project (default: now)"),
    service: BookingService = Depends(get_booking_service),
):
    """Project available spaces and occupancy at an instant."""
    projection = await service.project_occupancy(
        location_id, as_utc_naive(as_of) if as_of else None
    )
    return OccupancyResponse.model_validate(projection)


@router.get("/{location_id}/availability", response_model=LocationAvailabilityResponse)
async def get_location_availability(
    location_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
):
    """Get real-time availability of every space at a location."""
    availability = await service.get_location_availability(location_id)
    projection = availability.projection
    return LocationAvailabilityResponse(
        location_id=availability.location_id,
        total_spaces=projection.total_spaces,
        available_spaces=projection.available_spaces,
        occupancy_percentage=projection.occupancy_percentage,
        is_currently_open=availability.is_currently_open,
        as_of=projection.as_of,
        spaces=[SpaceAvailabilityResponse.model_validate(s) for s in availability.spaces],
        available_space_types=availability.available_space_types,
    )


@router.get("/{location_id}/bookings", response_model=BookingListResponse)
async def list_location_bookings(
    location_id: uuid.UUID,
    status: Optional[str] = Query(None, description="Filter by booking status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _: str = Depends(verify_api_key),
    service: BookingService = Depends(get_booking_service),
):
    """
    Get bookings at a location.
    Requires X-API-Key header for authentication.
    """
    total, items = await service.list_bookings(
        location_id=location_id, status=status, limit=limit, offset=offset
    )
    return BookingListResponse(
        total=total,
        items=[BookingResponse.from_booking(b) for b in items],
        limit=limit,
        offset=offset,
    )


@router.put("/{location_id}/spaces/{space_id}/status", response_model=SpaceStatusResponse)
async def set_space_status(
    location_id: uuid.UUID,
    space_id: str,
    request: SpaceStatusRequest,
    user_id: str = Depends(get_user_id),
    _: str = Depends(verify_api_key),
    service: BookingService = Depends(get_booking_service),
):
    """
    Set one space's status.
    Requires X-API-Key header and a location admin identity.
    """
    update = await service.set_space_status(location_id, space_id, request.status, actor_id=user_id)
    return SpaceStatusResponse(
        space_id=update.change.space_id,
        old_status=update.change.old_status,
        new_status=update.change.new_status,
        available_spaces=update.projection.available_spaces,
        occupancy_percentage=update.projection.occupancy_percentage,
    )


@router.put("/{location_id}/spaces/status", response_model=BulkSpaceStatusResponse)
async def bulk_set_space_status(
    location_id: uuid.UUID,
    request: BulkSpaceStatusRequest,
    user_id: str = Depends(get_user_id),
    _: str = Depends(verify_api_key),
    service: BookingService = Depends(get_booking_service),
):
    """
    Set several spaces' status; rejected entries are reported, not fatal.
    Requires X-API-Key header and a location admin identity.
    """
    update = await service.bulk_set_space_status(
        location_id,
        [{"space_id": u.space_id, "status": u.status} for u in request.updates],
        actor_id=user_id,
    )
    return BulkSpaceStatusResponse(
        updated_spaces=[SpaceStatusChangeResponse.model_validate(c) for c in update.result.updated],
        errors=[BulkItemError(**e) for e in update.result.errors],
        available_spaces=update.projection.available_spaces,
        occupancy_percentage=update.projection.occupancy_percentage,
    )
