"""
Pydantic schemas for parking location and space API.
"""
from datetime import datetime
from typing import Dict, Optional, List
from pydantic import BaseModel, Field
import uuid


# ============ Request Schemas ============

class SpaceCreate(BaseModel):
    """A space to create with its location."""
    space_id: str = Field(..., min_length=1, max_length=50)
    type: str = Field("regular", description="regular, handicapped, ev-charging or reserved")
    level: Optional[str] = None
    section: Optional[str] = None


class LocationCreateRequest(BaseModel):
    """Request to register a parking location."""
    name: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1, max_length=200)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    hourly_rate: float = Field(..., ge=0)
    opening_time: str = Field("00:00", description="HH:MM")
    closing_time: str = Field("23:59", description="HH:MM")
    is_24_hours: bool = False
    timezone: str = Field("UTC", description="IANA zone of the opening hours, e.g. Asia/Kathmandu")
    spaces: List[SpaceCreate] = Field(..., min_length=1)
    admin_ids: List[str] = Field(default_factory=list)


class SpaceStatusRequest(BaseModel):
    """Set one space's status."""
    status: str = Field(..., description="available, occupied, maintenance or reserved")


class SpaceStatusItem(BaseModel):
    """One entry of a bulk status update."""
    space_id: str
    status: str


class BulkSpaceStatusRequest(BaseModel):
    """Set several spaces' status."""
    updates: List[SpaceStatusItem] = Field(..., min_length=1)


# ============ Response Schemas ============

class SpaceResponse(BaseModel):
    """Space as stored."""
    space_id: str
    type: str
    status: str
    level: Optional[str] = None
    section: Optional[str] = None

    class Config:
        from_attributes = True


class LocationResponse(BaseModel):
    """Parking location response."""
    id: uuid.UUID
    name: str
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    total_spaces: int
    available_spaces: int
    hourly_rate: float
    opening_time: str
    closing_time: str
    is_24_hours: bool
    timezone: str
    is_active: bool
    current_status: str
    spaces: List[SpaceResponse]
    updated_at: datetime

    class Config:
        from_attributes = True


class OccupancyResponse(BaseModel):
    """Availability projection at an instant."""
    total_spaces: int
    available_spaces: int
    occupancy_percentage: int
    as_of: datetime

    class Config:
        from_attributes = True


class SpaceStatusResponse(BaseModel):
    """Result of a single space status change."""
    space_id: str
    old_status: str
    new_status: str
    available_spaces: int
    occupancy_percentage: int


class SpaceStatusChangeResponse(BaseModel):
    """One applied change of a bulk update."""
    space_id: str
    old_status: str
    new_status: str

    class Config:
        from_attributes = True


class BulkItemError(BaseModel):
    """One rejected entry of a bulk update."""
    space_id: str
    code: str
    message: str


class BulkSpaceStatusResponse(BaseModel):
    """Result of a bulk space status update."""
    updated_spaces: List[SpaceStatusChangeResponse]
    errors: List[BulkItemError]
    available_spaces: int
    occupancy_percentage: int


class SpaceAvailabilityResponse(BaseModel):
    """Real-time view of one space."""
    space_id: str
    type: str
    status: str
    has_active_booking: bool
    real_time_status: str
    booking_id: Optional[str] = None

    class Config:
        from_attributes = True


class LocationAvailabilityResponse(BaseModel):
    """Real-time availability of a location."""
    location_id: str
    total_spaces: int
    available_spaces: int
    occupancy_percentage: int
    is_currently_open: bool
    as_of: datetime
    spaces: List[SpaceAvailabilityResponse]
    available_space_types: Dict[str, int]
