from datetime import date, time
from pydantic import BaseModel

from ..models import ResourceType


class Slot(BaseModel):
    id: int
    resource_type: ResourceType
    day_of_week: int
    start_time: time
    end_time: time
    capacity: int
    is_active: bool = True

    class Config:
        from_attributes = True


class SlotOccupancy(BaseModel):
    slot_id: int
    booking_date: date
    start_time: time
    end_time: time
    capacity: int
    taken_units: int
    free_units: int
    is_full: bool
    is_past: bool

    class Config:
        from_attributes = True


class WeekGrid(BaseModel):
    resource_type: ResourceType
    week_start: date
    week_end: date
    slots: list[SlotOccupancy]
