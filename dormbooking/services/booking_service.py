from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..core.auth import Identity, can_manage
from ..core.clock import Clock
from ..core.constants import STAFF_CANCEL_REASON, USER_CANCEL_REASON
from ..core.errors import (
    BookingConflict,
    BookingError,
    BookingNotFound,
    InvalidUnits,
    NotAuthorized,
    QuotaExceeded,
    SlotExpired,
    SlotFull,
    SlotNotFound,
)
from ..db import models
from ..db.models import BookingStatus, ResourceType
from . import audit, quota_cache, slot_catalog
from .ledger import BookingLedger
from .quota_policy import (
    IsoWeek,
    QuotaBasis,
    QuotaRule,
    StandingFutureCap,
    WeeklyUnitCap,
    can_add,
    charge_for,
    iso_week,
    quota_message,
    rule_for,
)

logger = logging.getLogger(__name__)

ALLOWED_UNITS = {
    ResourceType.LAV: frozenset({1, 2}),
    ResourceType.ASC: frozenset({1}),
    ResourceType.GYM: frozenset({1}),
}


@dataclass(frozen=True, slots=True)
class QuotaUsage:
    resource_type: ResourceType
    basis: QuotaBasis
    used: int
    limit: int
    week: IsoWeek | None = None

    @property
    def remaining(self) -> int:
        return max(self.limit - self.used, 0)


class BookingService:
    """Create and cancel bookings for one unit of work.

    Instances hold no state beyond the session, clock and settings they are
    given; build one per request.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock or Clock(self.settings.timezone)
        self.ledger = BookingLedger(db)

    def _resolve_slot(
        self, resource_type: ResourceType, slot_id: int, booking_date: date
    ) -> models.Slot:
        slot = slot_catalog.get_slot(self.db, slot_id)
        if (
            slot is None
            or not slot.is_active
            or slot.resource_type != resource_type
            or not slot_catalog.runs_on(slot, booking_date)
        ):
            raise SlotNotFound()
        return slot

    def current_usage(
        self,
        user_id: str,
        resource_type: ResourceType,
        booking_date: date,
        rule: QuotaRule,
    ) -> int:
        if isinstance(rule, StandingFutureCap):
            return self.ledger.count_active_future(user_id, resource_type, self.clock.today())
        week = iso_week(booking_date)
        if isinstance(rule, WeeklyUnitCap):
            return self.ledger.sum_active_units(user_id, resource_type, week)
        return self.ledger.count_active_in_week(user_id, resource_type, week)

    def weekly_usage(self, user_id: str, resource_type: ResourceType, any_day: date) -> QuotaUsage:
        resource_type = ResourceType(resource_type)
        rule = rule_for(resource_type, self.settings)
        week = None if isinstance(rule, StandingFutureCap) else iso_week(any_day)
        return QuotaUsage(
            resource_type=resource_type,
            basis=rule.basis,
            used=self.current_usage(user_id, resource_type, any_day, rule),
            limit=rule.limit,
            week=week,
        )

    def user_bookings(
        self, user_id: str, date_from: date | None = None, date_to: date | None = None
    ) -> list[models.Booking]:
        return self.ledger.list_for_user(user_id, date_from or self.clock.today(), date_to)

    def create_booking(
        self,
        user_id: str,
        resource_type: ResourceType,
        slot_id: int,
        booking_date: date,
        units: int = 1,
        *,
        actor: Identity | None = None,
    ) -> models.Booking:
        """Book ``units`` of a slot on ``booking_date`` for ``user_id``.

        Repeating an identical request returns the booking already on file,
        including when the duplicate was committed by a concurrent request.
        """
        resource_type = ResourceType(resource_type)
        log_ctx = {
            "user_id": user_id,
            "resource_type": resource_type.value,
            "slot_id": slot_id,
            "booking_date": booking_date.isoformat(),
            "units": units,
        }
        try:
            slot = self._resolve_slot(resource_type, slot_id, booking_date)
            if slot_catalog.is_past(booking_date, slot.end_time, self.clock):
                raise SlotExpired()
            if units not in ALLOWED_UNITS[resource_type]:
                allowed = ", ".join(str(value) for value in sorted(ALLOWED_UNITS[resource_type]))
                raise InvalidUnits(f"{resource_type.value} bookings take {allowed} unit(s)")

            existing = self.ledger.find_active(user_id, slot_id, booking_date, resource_type)
            if existing is None:
                capacity = self._lock_for_write(slot, user_id, resource_type)
                # An identical request may have committed while we waited on the locks
                existing = self.ledger.find_active(user_id, slot_id, booking_date, resource_type)
            if existing is not None:
                self.db.rollback()
                logger.info("Booking already exists", extra={**log_ctx, "booking_id": existing.id})
                return existing

            booking = self._insert_booking(slot.id, capacity, user_id, resource_type, booking_date, units)
        except BookingConflict as conflict:
            return self._resolve_conflict(conflict, user_id, resource_type, slot_id, booking_date, units)
        except BookingError as exc:
            self.db.rollback()
            logger.info("Booking rejected", extra={**log_ctx, "error": type(exc).__name__})
            raise
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Booking failed", extra=log_ctx)
            raise

        audit.record_booking_event(
            self.db,
            audit.BOOKING_CREATED,
            booking,
            actor_id=actor.user_id if actor else user_id,
            actor_type=audit.actor_type_for(actor) if actor else models.ActorType.user,
        )
        self.db.commit()
        logger.info("Booking created", extra={**log_ctx, "booking_id": booking.id})
        self._refresh_derived(user_id, booking_date)
        return booking

    def _lock_for_write(self, slot: models.Slot, user_id: str, resource_type: ResourceType) -> int:
        """Take the slot row lock, then the user's quota lock; returns the locked capacity."""
        locked = self.ledger.lock_slot(slot.id)
        self.ledger.lock_user_quota(user_id, resource_type)
        return locked.capacity if locked is not None else slot.capacity

    def _insert_booking(
        self,
        slot_id: int,
        capacity: int,
        user_id: str,
        resource_type: ResourceType,
        booking_date: date,
        units: int,
    ) -> models.Booking:
        if self.ledger.taken_units(slot_id, booking_date) + units > capacity:
            raise SlotFull()

        rule = rule_for(resource_type, self.settings)
        decision = can_add(rule, self.current_usage(user_id, resource_type, booking_date, rule), units)
        if not decision.allowed:
            raise QuotaExceeded(decision, quota_message(resource_type, rule))

        booking = self.ledger.insert(
            models.Booking(
                user_id=user_id,
                slot_id=slot_id,
                booking_date=booking_date,
                resource_type=resource_type,
                units=units,
                created_at=self.clock.now(),
            )
        )
        if self.ledger.taken_units(slot_id, booking_date) > capacity:
            raise SlotFull()
        usage = self.current_usage(user_id, resource_type, booking_date, rule)
        if usage > rule.limit:
            raise QuotaExceeded(
                can_add(rule, usage - charge_for(rule, units), units),
                quota_message(resource_type, rule),
            )
        return booking

    def _resolve_conflict(
        self,
        conflict: BookingConflict,
        user_id: str,
        resource_type: ResourceType,
        slot_id: int,
        booking_date: date,
        units: int,
    ) -> models.Booking:
        self.db.rollback()
        winner = self.ledger.find_active(user_id, slot_id, booking_date, resource_type)
        if winner is not None:
            logger.info(
                "Concurrent booking resolved to existing record",
                extra={"user_id": user_id, "slot_id": slot_id, "booking_id": winner.id},
            )
            return winner
        slot = slot_catalog.get_slot(self.db, slot_id)
        if slot is None or self.ledger.taken_units(slot_id, booking_date) + units > slot.capacity:
            raise SlotFull() from conflict
        # The winning booking was cancelled before we could read it back
        raise conflict.__cause__

    def cancel_booking(
        self,
        booking_id: int,
        identity: Identity,
        reason: str | None = None,
    ) -> models.Booking:
        try:
            booking = self.ledger.get(booking_id, lock=True)
            if booking is None or booking.status != BookingStatus.booked:
                raise BookingNotFound()
            if slot_catalog.is_past(booking.booking_date, booking.slot.end_time, self.clock):
                raise SlotExpired("Cannot cancel a slot that has already ended")
            if not can_manage(identity, booking):
                raise NotAuthorized()
            if reason is None:
                reason = USER_CANCEL_REASON if booking.user_id == identity.user_id else STAFF_CANCEL_REASON
            self.ledger.cancel(booking, identity.user_id, reason, at=self.clock.now())
        except BookingError as exc:
            self.db.rollback()
            logger.info(
                "Cancellation rejected",
                extra={"booking_id": booking_id, "actor": identity.user_id, "error": type(exc).__name__},
            )
            raise

        audit.record_booking_event(
            self.db,
            audit.BOOKING_CANCELLED,
            booking,
            actor_id=identity.user_id,
            actor_type=audit.actor_type_for(identity),
        )
        self.db.commit()
        logger.info(
            "Booking cancelled",
            extra={"booking_id": booking.id, "actor": identity.user_id, "reason": reason},
        )
        self._refresh_derived(booking.user_id, booking.booking_date)
        return booking

    def _refresh_derived(self, user_id: str, booking_date: date) -> None:
        # The booking is already committed; the scheduler repairs a missed refresh
        try:
            quota_cache.reconcile_weekly_quota(self.db, user_id, booking_date)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "Failed to refresh weekly quota counters",
                extra={"user_id": user_id, "booking_date": booking_date.isoformat()},
            )
