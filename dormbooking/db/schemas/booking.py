from datetime import date, datetime
from pydantic import BaseModel, Field

from ..models import BookingStatus, ResourceType


class BookingCreate(BaseModel):
    resource_type: ResourceType
    slot_id: int
    booking_date: date
    units: int = Field(default=1, ge=1)


class BookingCancel(BaseModel):
    reason: str | None = None


class Booking(BaseModel):
    id: int
    user_id: str
    slot_id: int
    booking_date: date
    resource_type: ResourceType
    units: int
    status: BookingStatus
    created_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None

    class Config:
        from_attributes = True
