"""
Pydantic schemas for booking API.
"""
from datetime import date, datetime
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator
import uuid
from app.core.time_range import as_utc_naive


# ============ Request Schemas ============

class VehicleInfoRequest(BaseModel):
    """Vehicle details supplied with a booking."""
    plate_number: str = Field(..., min_length=1, max_length=20)
    vehicle_type: str = Field(..., description="car, motorcycle, bus or truck")
    make: Optional[str] = Field(None, max_length=50)
    model: Optional[str] = Field(None, max_length=50)


class BookingCreateRequest(BaseModel):
    """Request to reserve a space."""
    location_id: uuid.UUID
    space_id: str = Field(..., min_length=1, max_length=50)
    vehicle_info: VehicleInfoRequest
    start_time: datetime
    end_time: datetime
    payment_method: str = Field(..., description="paypal, esewa, cash or card")
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_time(cls, value: datetime) -> datetime:
        return as_utc_naive(value)


class CheckInRequest(BaseModel):
    """Check-in, optionally presenting the booking QR token."""
    qr_code: Optional[str] = None


class CancelRequest(BaseModel):
    """Cancellation request."""
    reason: Optional[str] = Field(None, max_length=500)


class ExtendRequest(BaseModel):
    """Request to push a booking's end time."""
    new_end_time: datetime

    @field_validator("new_end_time")
    @classmethod
    def normalize_time(cls, value: datetime) -> datetime:
        return as_utc_naive(value)


class PaymentConfirmRequest(BaseModel):
    """Outcome reported by the payment gateway."""
    succeeded: bool
    transaction_id: Optional[str] = Field(None, max_length=100)


# ============ Response Schemas ============

class ExtensionResponse(BaseModel):
    """Extension record."""
    original_end_time: datetime
    new_end_time: datetime
    additional_amount: float
    requested_at: datetime
    status: str

    class Config:
        from_attributes = True


class PenaltyResponse(BaseModel):
    """Penalty record."""
    type: str
    amount: float
    description: str
    issued_at: datetime
    is_paid: bool

    class Config:
        from_attributes = True


class RefundResponse(BaseModel):
    """Refund outcome of a cancellation."""
    amount: float
    percentage: float
    status: str


class CancellationResponse(BaseModel):
    """Cancellation record."""
    cancelled_at: datetime
    cancelled_by: str
    reason: Optional[str] = None
    refund: RefundResponse


class BookingResponse(BaseModel):
    """Booking with derived financials."""
    id: uuid.UUID
    user_id: str
    location_id: uuid.UUID
    space_id: str
    plate_number: str
    vehicle_type: str
    start_time: datetime
    end_time: datetime
    actual_entry_time: Optional[datetime] = None
    actual_exit_time: Optional[datetime] = None
    status: str
    payment_status: str
    payment_method: str
    total_amount: float
    duration_hours: int
    actual_duration_hours: int
    total_penalties: float
    final_amount: float
    qr_code: Optional[str] = None
    extensions: List[ExtensionResponse] = []
    penalties: List[PenaltyResponse] = []
    cancellation: Optional[CancellationResponse] = None
    created_at: datetime

    @classmethod
    def from_booking(cls, booking) -> "BookingResponse":
        cancellation = None
        if booking.cancelled_at is not None:
            cancellation = CancellationResponse(
                cancelled_at=booking.cancelled_at,
                cancelled_by=booking.cancelled_by,
                reason=booking.cancellation_reason,
                refund=RefundResponse(
                    amount=booking.refund_amount or 0.0,
                    percentage=booking.refund_percentage or 0.0,
                    status=booking.refund_status,
                ),
            )
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            location_id=booking.location_id,
            space_id=booking.space_id,
            plate_number=booking.plate_number,
            vehicle_type=booking.vehicle_type,
            start_time=booking.start_time,
            end_time=booking.end_time,
            actual_entry_time=booking.actual_entry_time,
            actual_exit_time=booking.actual_exit_time,
            status=booking.status,
            payment_status=booking.payment_status,
            payment_method=booking.payment_method,
            total_amount=booking.total_amount,
            duration_hours=booking.duration_hours,
            actual_duration_hours=booking.actual_duration_hours,
            total_penalties=booking.total_penalties,
            final_amount=booking.final_amount,
            qr_code=booking.qr_code,
            extensions=[ExtensionResponse.model_validate(e) for e in booking.extensions],
            penalties=[PenaltyResponse.model_validate(p) for p in booking.penalties],
            cancellation=cancellation,
            created_at=booking.created_at,
        )


class BookingListResponse(BaseModel):
    """Paginated booking list response."""
    total: int
    items: List[BookingResponse]
    limit: int
    offset: int


class TimeSlotResponse(BaseModel):
    """A bookable slot."""
    start: datetime
    end: datetime
    available: bool
    price: float

    class Config:
        from_attributes = True


class AvailableSlotsResponse(BaseModel):
    """Slots for one space on one day."""
    location_id: uuid.UUID
    space_id: str
    date: date
    slots: List[TimeSlotResponse]
    available_count: int
