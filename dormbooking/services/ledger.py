from __future__ import annotations

import hashlib
import logging
from datetime import date, datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.errors import BookingConflict, BookingNotFound
from ..db import models
from ..db.models import ACTIVE_BOOKING_INDEX, BookingStatus, ResourceType
from .quota_policy import IsoWeek

logger = logging.getLogger(__name__)

_ACTIVE_IDENTITY_COLUMNS = (
    "bookings.user_id",
    "bookings.slot_id",
    "bookings.booking_date",
    "bookings.resource_type",
)


def quota_lock_key(user_id: str, resource_type: ResourceType) -> int:
    """Stable signed 64-bit key for a per-user, per-resource advisory lock."""
    digest = hashlib.blake2b(f"{user_id}:{resource_type.value}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def is_active_booking_violation(exc: IntegrityError) -> bool:
    constraint = getattr(getattr(exc.orig, "diag", None), "constraint_name", None)
    if constraint:
        return constraint == ACTIVE_BOOKING_INDEX
    # SQLite reports the offending columns instead of the index name
    message = str(exc.orig)
    return "UNIQUE constraint failed" in message and all(
        column in message for column in _ACTIVE_IDENTITY_COLUMNS
    )


class BookingLedger:
    """Authoritative store of bookings on top of a SQLAlchemy session.

    The partial unique index on active bookings is the only guarantee against
    duplicates; the read helpers here are snapshots and may be stale by the
    time a caller acts on them.
    """

    def __init__(self, db: Session):
        self.db = db

    def _active(self):
        return select(models.Booking).where(models.Booking.status == BookingStatus.booked)

    def get(self, booking_id: int, *, lock: bool = False) -> models.Booking | None:
        return self.db.get(models.Booking, booking_id, with_for_update=lock or None)

    def find_active(
        self,
        user_id: str,
        slot_id: int,
        booking_date: date,
        resource_type: ResourceType,
    ) -> models.Booking | None:
        stmt = self._active().where(
            models.Booking.user_id == user_id,
            models.Booking.slot_id == slot_id,
            models.Booking.booking_date == booking_date,
            models.Booking.resource_type == resource_type,
        )
        return self.db.execute(stmt).scalars().first()

    def list_active(
        self,
        resource_type: ResourceType,
        date_from: date,
        date_to: date,
        *,
        slot_id: int | None = None,
        user_id: str | None = None,
    ) -> list[models.Booking]:
        stmt = self._active().where(
            models.Booking.resource_type == resource_type,
            models.Booking.booking_date >= date_from,
            models.Booking.booking_date <= date_to,
        )
        if slot_id is not None:
            stmt = stmt.where(models.Booking.slot_id == slot_id)
        if user_id is not None:
            stmt = stmt.where(models.Booking.user_id == user_id)
        stmt = stmt.order_by(models.Booking.booking_date, models.Booking.slot_id, models.Booking.id)
        return list(self.db.execute(stmt).scalars().all())

    def list_for_user(self, user_id: str, date_from: date, date_to: date | None = None) -> list[models.Booking]:
        stmt = self._active().where(
            models.Booking.user_id == user_id,
            models.Booking.booking_date >= date_from,
        )
        if date_to is not None:
            stmt = stmt.where(models.Booking.booking_date <= date_to)
        stmt = stmt.order_by(models.Booking.booking_date, models.Booking.slot_id)
        return list(self.db.execute(stmt).scalars().all())

    def taken_units(self, slot_id: int, booking_date: date) -> int:
        total = self.db.scalar(
            select(func.coalesce(func.sum(models.Booking.units), 0)).where(
                models.Booking.status == BookingStatus.booked,
                models.Booking.slot_id == slot_id,
                models.Booking.booking_date == booking_date,
            )
        )
        return int(total or 0)

    def sum_active_units(self, user_id: str, resource_type: ResourceType, week: IsoWeek) -> int:
        monday, sunday = week.dates()
        total = self.db.scalar(
            select(func.coalesce(func.sum(models.Booking.units), 0)).where(
                models.Booking.status == BookingStatus.booked,
                models.Booking.user_id == user_id,
                models.Booking.resource_type == resource_type,
                models.Booking.booking_date >= monday,
                models.Booking.booking_date <= sunday,
            )
        )
        return int(total or 0)

    def count_active_in_week(self, user_id: str, resource_type: ResourceType, week: IsoWeek) -> int:
        monday, sunday = week.dates()
        total = self.db.scalar(
            select(func.count(models.Booking.id)).where(
                models.Booking.status == BookingStatus.booked,
                models.Booking.user_id == user_id,
                models.Booking.resource_type == resource_type,
                models.Booking.booking_date >= monday,
                models.Booking.booking_date <= sunday,
            )
        )
        return int(total or 0)

    def count_active_future(self, user_id: str, resource_type: ResourceType, today: date) -> int:
        total = self.db.scalar(
            select(func.count(models.Booking.id)).where(
                models.Booking.status == BookingStatus.booked,
                models.Booking.user_id == user_id,
                models.Booking.resource_type == resource_type,
                models.Booking.booking_date >= today,
            )
        )
        return int(total or 0)

    def lock_slot(self, slot_id: int) -> models.Slot | None:
        # Serialises writers on the same slot; SQLite ignores FOR UPDATE
        return self.db.execute(
            select(models.Slot).where(models.Slot.id == slot_id).with_for_update()
        ).scalar_one_or_none()

    def lock_user_quota(self, user_id: str, resource_type: ResourceType) -> bool:
        # Serialises one user's writers on one resource across slots until the
        # transaction ends. Advisory locks exist on PostgreSQL only.
        if self.db.get_bind().dialect.name != "postgresql":
            return False
        self.db.execute(select(func.pg_advisory_xact_lock(quota_lock_key(user_id, resource_type))))
        return True

    def insert(self, booking: models.Booking) -> models.Booking:
        booking.status = BookingStatus.booked
        self.db.add(booking)
        try:
            self.db.flush()
        except IntegrityError as exc:
            if is_active_booking_violation(exc):
                raise BookingConflict() from exc
            raise
        return booking

    def cancel(
        self,
        booking: models.Booking,
        cancelled_by: str,
        reason: str | None = None,
        at: datetime | None = None,
    ) -> models.Booking:
        if booking.status != BookingStatus.booked:
            raise BookingNotFound("Booking is not active")
        booking.status = BookingStatus.cancelled
        booking.cancelled_by = cancelled_by
        booking.cancelled_at = at or datetime.now(timezone.utc)
        booking.cancellation_reason = reason
        self.db.flush()
        return booking

    def deduplicate_active(self) -> int:
        """Delete all but the newest active booking per (user, slot, date, resource)."""
        ranked = (
            select(
                models.Booking.id.label("id"),
                func.row_number()
                .over(
                    partition_by=(
                        models.Booking.user_id,
                        models.Booking.slot_id,
                        models.Booking.booking_date,
                        models.Booking.resource_type,
                    ),
                    order_by=(models.Booking.created_at.desc(), models.Booking.id.desc()),
                )
                .label("rn"),
            )
            .where(models.Booking.status == BookingStatus.booked)
            .subquery()
        )
        duplicate_ids = list(
            self.db.execute(select(ranked.c.id).where(ranked.c.rn > 1)).scalars().all()
        )
        if not duplicate_ids:
            return 0
        self.db.execute(
            delete(models.Booking)
            .where(models.Booking.id.in_(duplicate_ids))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info("Removed duplicate active bookings", extra={"removed": len(duplicate_ids)})
        return len(duplicate_ids)
