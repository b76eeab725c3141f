"""Business outcomes of the booking engine.

Each error is a recoverable, caller-facing rejection with one actionable
message. Store failures are not modelled here and propagate as raised by
SQLAlchemy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..services.quota_policy import QuotaDecision


class BookingError(Exception):
    default_message = "Booking failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class SlotExpired(BookingError):
    default_message = "This time slot has already ended"


class InvalidUnits(BookingError):
    default_message = "Invalid number of units for this resource"


class SlotFull(BookingError):
    default_message = "No free units left in this slot"


class QuotaExceeded(BookingError):
    default_message = "Quota exceeded"

    def __init__(self, decision: QuotaDecision, message: str | None = None):
        self.decision = decision
        super().__init__(message)

    @property
    def limit(self) -> int:
        return self.decision.limit

    @property
    def current_usage(self) -> int:
        return self.decision.current_usage


class BookingConflict(BookingError):
    """An identical active booking was committed by another writer."""

    default_message = "Booking already exists"


class BookingNotFound(BookingError):
    default_message = "Booking not found"


class SlotNotFound(BookingError):
    default_message = "Slot not found"


class NotAuthorized(BookingError):
    default_message = "You are not allowed to manage this booking"
