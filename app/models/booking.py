"""
Booking data models for SQLAlchemy ORM.
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import List
from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.core.time_range import TimeRange, ceil_hours
from app.database import Base


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    NO_SHOW = "no_show"


# Statuses that hold the space; these must never overlap on one space
BLOCKING_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.ACTIVE.value)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"


class PaymentMethod(str, Enum):
    PAYPAL = "paypal"
    ESEWA = "esewa"
    CASH = "cash"
    CARD = "card"


class VehicleType(str, Enum):
    CAR = "car"
    MOTORCYCLE = "motorcycle"
    BUS = "bus"
    TRUCK = "truck"


class PenaltyType(str, Enum):
    OVERSTAY = "overstay"
    WRONG_SPACE = "wrong_space"
    NO_SHOW = "no_show"
    OTHER = "other"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"
    NOT_APPLICABLE = "not_applicable"


class Booking(Base):
    """A reservation of one space for one time window."""

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )

    # Identity
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    location_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("parking_locations.id"),
    )
    space_id: Mapped[str] = mapped_column(String(50))

    # Vehicle
    plate_number: Mapped[str] = mapped_column(String(20), index=True)
    vehicle_type: Mapped[str] = mapped_column(String(20))
    vehicle_make: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vehicle_model: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Requested window [start_time, end_time)
    start_time: Mapped[datetime] = mapped_column(DateTime)
    end_time: Mapped[datetime] = mapped_column(DateTime)

    # Set only by check-in / check-out
    actual_entry_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    actual_exit_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default=BookingStatus.PENDING.value)

    # Payment
    total_amount: Mapped[float] = mapped_column(Float)
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value)
    payment_method: Mapped[str] = mapped_column(String(20))
    payment_transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    qr_code: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Cancellation
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    refund_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    refund_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    refund_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    extensions: Mapped[List["BookingExtension"]] = relationship(
        cascade="all, delete-orphan",
        order_by="BookingExtension.id",
        lazy="selectin",
    )
    penalties: Mapped[List["BookingPenalty"]] = relationship(
        cascade="all, delete-orphan",
        order_by="BookingPenalty.id",
        lazy="selectin",
    )

    __table_args__ = (
        # Conflict-check lookup
        Index(
            "idx_booking_conflict",
            "location_id", "space_id", "status", "start_time", "end_time",
        ),
        Index("idx_booking_user_status", "user_id", "status"),
    )

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(self.start_time, self.end_time)

    @property
    def duration_hours(self) -> int:
        return ceil_hours(self.end_time - self.start_time)

    @property
    def actual_duration_hours(self) -> int:
        if not self.actual_entry_time or not self.actual_exit_time:
            return 0
        return ceil_hours(self.actual_exit_time - self.actual_entry_time)

    @property
    def total_penalties(self) -> float:
        return sum(p.amount for p in self.penalties)

    @property
    def final_amount(self) -> float:
        return self.total_amount + self.total_penalties


class BookingExtension(Base):
    """An approved push of a booking's end time."""

    __tablename__ = "booking_extensions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        index=True,
    )
    original_end_time: Mapped[datetime] = mapped_column(DateTime)
    new_end_time: Mapped[datetime] = mapped_column(DateTime)
    additional_amount: Mapped[float] = mapped_column(Float)
    requested_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    status: Mapped[str] = mapped_column(String(20), default="approved")  # pending, approved, rejected


class BookingPenalty(Base):
    """A charge added on top of the booking amount."""

    __tablename__ = "booking_penalties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        index=True,
    )
    type: Mapped[str] = mapped_column(String(20))
    amount: Mapped[float] = mapped_column(Float)
    description: Mapped[str] = mapped_column(String(255))
    issued_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
