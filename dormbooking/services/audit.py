from sqlalchemy.orm import Session

from ..core.auth import Identity
from ..db import models

BOOKING_CREATED = "booking_created"
BOOKING_CANCELLED = "booking_cancelled"


def actor_type_for(identity: Identity | None) -> models.ActorType:
    if identity is None:
        return models.ActorType.system
    if identity.is_staff:
        return models.ActorType.staff
    return models.ActorType.user


def record_booking_event(
    db: Session,
    action: str,
    booking: models.Booking,
    *,
    actor_id: str | None,
    actor_type: models.ActorType,
) -> models.AuditLog:
    entry = models.AuditLog(
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        entity_type="booking",
        entity_id=booking.id,
        payload={
            "user_id": booking.user_id,
            "slot_id": booking.slot_id,
            "booking_date": booking.booking_date.isoformat(),
            "resource_type": booking.resource_type.value,
            "units": booking.units,
            "reason": booking.cancellation_reason,
        },
    )
    db.add(entry)
    return entry
