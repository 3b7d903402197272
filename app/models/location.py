"""
Parking location data models for SQLAlchemy ORM.
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional
import pytz
from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.database import Base


class SpaceType(str, Enum):
    REGULAR = "regular"
    HANDICAPPED = "handicapped"
    EV_CHARGING = "ev-charging"
    RESERVED = "reserved"


class SpaceStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    RESERVED = "reserved"


class LocationStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    MAINTENANCE = "maintenance"
    FULL = "full"


class ParkingLocation(Base):
    """A bookable parking location and its spaces."""

    __tablename__ = "parking_locations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )

    # Basic info
    name: Mapped[str] = mapped_column(String(100))
    address: Mapped[str] = mapped_column(String(200))
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Capacity; available_spaces is recounted on every space status mutation
    total_spaces: Mapped[int] = mapped_column(Integer, default=0)
    available_spaces: Mapped[int] = mapped_column(Integer, default=0)

    # Pricing
    hourly_rate: Mapped[float] = mapped_column(Float)

    # Operating hours, "HH:MM"
    opening_time: Mapped[str] = mapped_column(String(5), default="00:00")
    closing_time: Mapped[str] = mapped_column(String(5), default="23:59")
    is_24_hours: Mapped[bool] = mapped_column(Boolean, default=False)
    # IANA zone the opening hours are expressed in
    timezone: Mapped[str] = mapped_column(String(50), default="UTC")

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    current_status: Mapped[str] = mapped_column(String(20), default=LocationStatus.OPEN.value)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    spaces: Mapped[List["ParkingSpace"]] = relationship(
        back_populates="location",
        cascade="all, delete-orphan",
        order_by="ParkingSpace.id",
        lazy="selectin",
    )
    admins: Mapped[List["LocationAdmin"]] = relationship(
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def get_space(self, space_id: str) -> Optional["ParkingSpace"]:
        for space in self.spaces:
            if space.space_id == space_id:
                return space
        return None

    def is_admin(self, user_id: str) -> bool:
        return any(a.user_id == user_id for a in self.admins)

    def recount_available(self) -> int:
        """Recompute the stored counters from space statuses."""
        self.total_spaces = len(self.spaces)
        self.available_spaces = sum(
            1 for s in self.spaces if s.status == SpaceStatus.AVAILABLE
        )
        return self.available_spaces

    def get_timezone(self):
        return pytz.timezone(self.timezone or "UTC")

    def local_time(self, utc_dt: datetime) -> datetime:
        """Naive UTC instant as naive wall-clock time at the location."""
        return pytz.UTC.localize(utc_dt).astimezone(self.get_timezone()).replace(tzinfo=None)

    def utc_time(self, local_dt: datetime) -> datetime:
        """Naive wall-clock time at the location as a naive UTC instant."""
        return self.get_timezone().localize(local_dt).astimezone(pytz.UTC).replace(tzinfo=None)

    def is_open_at(self, now: datetime) -> bool:
        """Whether the location accepts bookings at naive-UTC ``now``."""
        if not self.is_active or self.current_status != LocationStatus.OPEN:
            return False
        if self.is_24_hours:
            return True

        current = self.local_time(now).strftime("%H:%M")
        if self.opening_time <= self.closing_time:
            return self.opening_time <= current <= self.closing_time
        # Overnight hours, e.g. 18:00-06:00
        return current >= self.opening_time or current <= self.closing_time


class ParkingSpace(Base):
    """A single stall; owned by its location."""

    __tablename__ = "parking_spaces"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("parking_locations.id", ondelete="CASCADE"),
        index=True,
    )
    space_id: Mapped[str] = mapped_column(String(50))
    type: Mapped[str] = mapped_column(String(20), default=SpaceType.REGULAR.value)
    status: Mapped[str] = mapped_column(String(20), default=SpaceStatus.AVAILABLE.value)
    level: Mapped[str | None] = mapped_column(String(20), nullable=True)
    section: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status_updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    location: Mapped[ParkingLocation] = relationship(back_populates="spaces")

    __table_args__ = (
        UniqueConstraint("location_id", "space_id", name="uq_space_per_location"),
    )


class LocationAdmin(Base):
    """Users assigned to administer a location."""

    __tablename__ = "location_admins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("parking_locations.id", ondelete="CASCADE"),
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True)

    __table_args__ = (
        UniqueConstraint("location_id", "user_id", name="uq_location_admin"),
    )
