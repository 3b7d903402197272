"""
Booking API router.
Provides endpoints for the booking lifecycle: create, pay, check in/out,
cancel, extend and query.
"""
import uuid
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query
from app.dependencies import get_user_id, verify_api_key
from app.schemas.booking import (
    AvailableSlotsResponse,
    BookingCreateRequest,
    BookingListResponse,
    BookingResponse,
    CancelRequest,
    CheckInRequest,
    ExtendRequest,
    PaymentConfirmRequest,
    TimeSlotResponse,
)
from app.services.booking_service import BookingService, VehicleInfo, get_booking_service

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    request: BookingCreateRequest,
    user_id: str = Depends(get_user_id),
    service: BookingService = Depends(get_booking_service),
):
    """
    Reserve a space for a time window.
    Cash bookings are confirmed immediately; other methods stay pending
    until the payment outcome is reported.
    """
    booking = await service.create_booking(
        user_id=user_id,
        location_id=request.location_id,
        space_id=request.space_id,
        vehicle=VehicleInfo(
            plate_number=request.vehicle_info.plate_number,
            vehicle_type=request.vehicle_info.vehicle_type,
            make=request.vehicle_info.make,
            model=request.vehicle_info.model,
        ),
        start_time=request.start_time,
        end_time=request.end_time,
        payment_method=request.payment_method,
        notes=request.notes,
    )
    return BookingResponse.from_booking(booking)


@router.get("", response_model=BookingListResponse)
async def list_my_bookings(
    status: Optional[str] = Query(None, description="Filter by booking status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_user_id),
    service: BookingService = Depends(get_booking_service),
):
    """Get the caller's bookings, newest first."""
    total, items = await service.list_bookings(
        user_id=user_id, status=status, limit=limit, offset=offset
    )
    return BookingListResponse(
        total=total,
        items=[BookingResponse.from_booking(b) for b in items],
        limit=limit,
        offset=offset,
    )


@router.get("/slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    location_id: uuid.UUID = Query(..., description="Parking location ID"),
    space_id: str = Query(..., description="Space identifier"),
    day: date = Query(..., alias="date", description="Day to enumerate (YYYY-MM-DD)"),
    service: BookingService = Depends(get_booking_service),
):
    """Get bookable slots for a space on a day, with price and availability."""
    slots = await service.get_available_slots(location_id, space_id, day)
    return AvailableSlotsResponse(
        location_id=location_id,
        space_id=space_id,
        date=day,
        slots=[TimeSlotResponse.model_validate(s) for s in slots],
        available_count=sum(1 for s in slots if s.available),
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: uuid.UUID,
    user_id: str = Depends(get_user_id),
    service: BookingService = Depends(get_booking_service),
):
    """Get a booking owned by the caller, or at a location the caller administers."""
    booking = await service.get_booking(booking_id, requester_id=user_id)
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/payment", response_model=BookingResponse)
async def confirm_payment(
    booking_id: uuid.UUID,
    request: PaymentConfirmRequest,
    _: str = Depends(verify_api_key),
    service: BookingService = Depends(get_booking_service),
):
    """
    Report a payment gateway outcome.
    Requires X-API-Key header for authentication.
    """
    booking = await service.confirm_payment(
        booking_id, succeeded=request.succeeded, transaction_id=request.transaction_id
    )
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/checkin", response_model=BookingResponse)
async def check_in(
    booking_id: uuid.UUID,
    request: Optional[CheckInRequest] = None,
    service: BookingService = Depends(get_booking_service),
):
    """Check a vehicle in; the booking QR code may be presented."""
    booking = await service.check_in(
        booking_id, presented_qr_code=request.qr_code if request else None
    )
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/checkout", response_model=BookingResponse)
async def check_out(
    booking_id: uuid.UUID,
    service: BookingService = Depends(get_booking_service),
):
    """Check a vehicle out, charging any overstay penalty."""
    booking = await service.check_out(booking_id)
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: uuid.UUID,
    request: Optional[CancelRequest] = None,
    user_id: str = Depends(get_user_id),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a pending or confirmed booking; the refund depends on notice given."""
    booking = await service.cancel_booking(
        booking_id, requester_id=user_id, reason=request.reason if request else None
    )
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/extend", response_model=BookingResponse)
async def extend_booking(
    booking_id: uuid.UUID,
    request: ExtendRequest,
    user_id: str = Depends(get_user_id),
    service: BookingService = Depends(get_booking_service),
):
    """Push the end of a confirmed or active booking later."""
    booking = await service.extend_booking(
        booking_id, requester_id=user_id, new_end_time=request.new_end_time
    )
    return BookingResponse.from_booking(booking)


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
async def mark_no_show(
    booking_id: uuid.UUID,
    user_id: str = Depends(get_user_id),
    _: str = Depends(verify_api_key),
    service: BookingService = Depends(get_booking_service),
):
    """
    Mark a confirmed booking as no-show.
    Requires X-API-Key header and a location admin identity.
    """
    booking = await service.mark_no_show(booking_id, actor_id=user_id)
    return BookingResponse.from_booking(booking)
