from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import models
from ..db.models import ResourceType
from .ledger import BookingLedger
from .quota_policy import IsoWeek, iso_week

logger = logging.getLogger(__name__)


def reconcile_week(db: Session, user_id: str, week: IsoWeek) -> models.WeeklyQuota:
    """Rebuild one user's counters for ``week`` from active bookings."""
    ledger = BookingLedger(db)
    lav_units = ledger.sum_active_units(user_id, ResourceType.LAV, week)
    asc_count = ledger.count_active_in_week(user_id, ResourceType.ASC, week)

    row = db.execute(
        select(models.WeeklyQuota).where(
            models.WeeklyQuota.user_id == user_id,
            models.WeeklyQuota.year == week.year,
            models.WeeklyQuota.week_number == week.week,
        )
    ).scalar_one_or_none()
    if row is None:
        row = models.WeeklyQuota(user_id=user_id, year=week.year, week_number=week.week)
        db.add(row)
    elif row.lav_count != lav_units or row.asc_count != asc_count:
        logger.warning(
            "Weekly quota counters drifted from bookings",
            extra={
                "user_id": user_id,
                "year": week.year,
                "week": week.week,
                "cached": (row.lav_count, row.asc_count),
                "actual": (lav_units, asc_count),
            },
        )
    row.lav_count = lav_units
    row.asc_count = asc_count
    db.flush()
    return row


def reconcile_weekly_quota(db: Session, user_id: str, booking_date: date) -> models.WeeklyQuota:
    row = reconcile_week(db, user_id, iso_week(booking_date))
    db.commit()
    return row


def reconcile_all(db: Session, since: date) -> int:
    """Repair counters for every (user, week) holding bookings on or after ``since``."""
    pairs = db.execute(
        select(models.Booking.user_id, models.Booking.booking_date)
        .where(
            models.Booking.booking_date >= since,
            models.Booking.resource_type.in_([ResourceType.LAV, ResourceType.ASC]),
        )
        .distinct()
    ).all()
    weeks = {(user_id, iso_week(booking_date)) for user_id, booking_date in pairs}

    cached = db.execute(
        select(models.WeeklyQuota).where(models.WeeklyQuota.year >= since.isocalendar()[0])
    ).scalars().all()
    for row in cached:
        week = IsoWeek(row.year, row.week_number)
        if week.sunday >= since:
            weeks.add((row.user_id, week))

    for user_id, week in weeks:
        reconcile_week(db, user_id, week)
    db.commit()
    return len(weeks)
