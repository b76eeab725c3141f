from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import Settings
from ..core.clock import Clock
from ..core.constants import FIRST_SLOT_START, SLOT_DURATION, SLOTS_PER_DAY
from ..db import models
from .ledger import BookingLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TimeWindow:
    key: str
    start: time
    end: time

    @property
    def label(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"


@dataclass(slots=True)
class SlotOccupancy:
    slot_id: int
    booking_date: date
    start_time: time
    end_time: time
    capacity: int
    taken_units: int
    is_past: bool

    @property
    def free_units(self) -> int:
        return max(self.capacity - self.taken_units, 0)

    @property
    def is_full(self) -> bool:
        return self.taken_units >= self.capacity


def daily_windows() -> list[TimeWindow]:
    """The ten contiguous 90 minute windows of a day, 08:00 -> 23:00."""
    windows = []
    anchor = datetime.combine(date.min, FIRST_SLOT_START)
    for index in range(SLOTS_PER_DAY):
        start = anchor + SLOT_DURATION * index
        end = start + SLOT_DURATION
        windows.append(TimeWindow(key=f"s_{start:%H%M}", start=start.time(), end=end.time()))
    return windows


def default_capacity(resource_type: models.ResourceType, settings: Settings) -> int:
    if resource_type == models.ResourceType.LAV:
        return settings.lav_slot_capacity
    if resource_type == models.ResourceType.ASC:
        return settings.asc_slot_capacity
    return settings.gym_slot_capacity


def day_of_week_for(day: date) -> int:
    # Stored convention: 0 = Sunday .. 6 = Saturday
    return day.isoweekday() % 7


def week_dates(day: date) -> list[date]:
    monday = day - timedelta(days=day.weekday())
    return [monday + timedelta(days=offset) for offset in range(7)]


def slot_end_instant(booking_date: date, end_time: time, clock: Clock) -> datetime:
    return datetime.combine(booking_date, end_time, tzinfo=clock.tz)


def is_past(booking_date: date, end_time: time, clock: Clock) -> bool:
    return slot_end_instant(booking_date, end_time, clock) < clock.now()


def runs_on(slot: models.Slot, booking_date: date) -> bool:
    return slot.day_of_week == day_of_week_for(booking_date)


def get_slot(db: Session, slot_id: int) -> models.Slot | None:
    return db.get(models.Slot, slot_id)


def find_slot(
    db: Session,
    resource_type: models.ResourceType,
    day_of_week: int,
    start_time: time,
) -> models.Slot | None:
    return db.execute(
        select(models.Slot).where(
            models.Slot.resource_type == resource_type,
            models.Slot.day_of_week == day_of_week,
            models.Slot.start_time == start_time,
            models.Slot.is_active.is_(True),
        )
    ).scalar_one_or_none()


def list_slots(db: Session, resource_type: models.ResourceType) -> list[models.Slot]:
    stmt = (
        select(models.Slot)
        .where(
            models.Slot.resource_type == resource_type,
            models.Slot.is_active.is_(True),
        )
        .order_by(models.Slot.day_of_week, models.Slot.start_time)
    )
    return list(db.execute(stmt).scalars().all())


def seed_catalog(db: Session, settings: Settings) -> int:
    """Insert any missing catalog rows for every resource type and weekday.

    Existing rows keep their capacity so administrative changes survive a reseed.
    """
    existing = {
        (slot.resource_type, slot.day_of_week, slot.start_time)
        for slot in db.execute(select(models.Slot)).scalars()
    }
    created = 0
    for resource_type in models.ResourceType:
        capacity = default_capacity(resource_type, settings)
        for day_of_week in range(7):
            for window in daily_windows():
                if (resource_type, day_of_week, window.start) in existing:
                    continue
                db.add(
                    models.Slot(
                        resource_type=resource_type,
                        day_of_week=day_of_week,
                        start_time=window.start,
                        end_time=window.end,
                        capacity=capacity,
                        is_active=True,
                    )
                )
                created += 1
    db.commit()
    if created:
        logger.info("Seeded slot catalog", extra={"slots_created": created})
    return created


def week_grid(
    db: Session,
    resource_type: models.ResourceType,
    any_day: date,
    clock: Clock,
) -> list[SlotOccupancy]:
    days = week_dates(any_day)
    slots = list_slots(db, resource_type)
    bookings = BookingLedger(db).list_active(resource_type, days[0], days[-1])
    taken: dict[tuple[int, date], int] = {}
    for booking in bookings:
        key = (booking.slot_id, booking.booking_date)
        taken[key] = taken.get(key, 0) + booking.units

    grid = []
    for day in days:
        day_of_week = day_of_week_for(day)
        for slot in slots:
            if slot.day_of_week != day_of_week:
                continue
            grid.append(
                SlotOccupancy(
                    slot_id=slot.id,
                    booking_date=day,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    capacity=slot.capacity,
                    taken_units=taken.get((slot.id, day), 0),
                    is_past=is_past(day, slot.end_time, clock),
                )
            )
    return grid
