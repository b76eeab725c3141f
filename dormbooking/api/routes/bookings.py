from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from ...api import deps
from ...core.auth import Identity
from ...core.clock import Clock
from ...core.errors import BookingError
from ...db.session import get_db
from ...db import models, schemas
from ...services import slot_catalog
from ...services.booking_service import BookingService
from ...services.ledger import BookingLedger
from .errors import to_http

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("", response_model=list[schemas.Booking])
def list_bookings(
    resource_type: models.ResourceType,
    date_from: date | None = None,
    date_to: date | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(deps.get_clock),
    _: Identity = Depends(deps.get_current_identity),
):
    days = slot_catalog.week_dates(clock.today())
    return BookingLedger(db).list_active(
        resource_type,
        date_from or days[0],
        date_to or days[-1],
    )


@router.get("/me", response_model=list[schemas.Booking])
def my_bookings(
    date_from: date | None = None,
    date_to: date | None = None,
    identity: Identity = Depends(deps.get_current_identity),
    service: BookingService = Depends(deps.get_booking_service),
):
    return service.user_bookings(identity.user_id, date_from, date_to)


@router.get("/users/{user_id}", response_model=list[schemas.Booking])
def user_bookings(
    user_id: str,
    date_from: date | None = None,
    date_to: date | None = None,
    service: BookingService = Depends(deps.get_booking_service),
    _: Identity = Depends(deps.require_roles("staff", "admin")),
):
    return service.user_bookings(user_id, date_from, date_to)


@router.post("", response_model=schemas.Booking)
def create_booking(
    payload: schemas.BookingCreate,
    identity: Identity = Depends(deps.get_current_identity),
    service: BookingService = Depends(deps.get_booking_service),
):
    try:
        return service.create_booking(
            identity.user_id,
            payload.resource_type,
            payload.slot_id,
            payload.booking_date,
            payload.units,
            actor=identity,
        )
    except BookingError as exc:
        raise to_http(exc) from exc


@router.post("/{booking_id}/cancel", response_model=schemas.Booking)
def cancel_booking(
    booking_id: int,
    payload: schemas.BookingCancel,
    identity: Identity = Depends(deps.get_current_identity),
    service: BookingService = Depends(deps.get_booking_service),
):
    try:
        return service.cancel_booking(booking_id, identity, reason=payload.reason)
    except BookingError as exc:
        raise to_http(exc) from exc
