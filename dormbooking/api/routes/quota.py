from datetime import date

from fastapi import APIRouter, Depends
from ...api import deps
from ...core.auth import Identity
from ...db import models, schemas
from ...services.booking_service import BookingService

router = APIRouter(prefix="/quota", tags=["quota"])


@router.get("", response_model=schemas.QuotaUsage)
def my_quota(
    resource_type: models.ResourceType,
    week_of: date | None = None,
    identity: Identity = Depends(deps.get_current_identity),
    service: BookingService = Depends(deps.get_booking_service),
):
    usage = service.weekly_usage(identity.user_id, resource_type, week_of or service.clock.today())
    week = usage.week
    return schemas.QuotaUsage(
        resource_type=usage.resource_type,
        basis=usage.basis.value,
        used=usage.used,
        limit=usage.limit,
        remaining=usage.remaining,
        iso_year=week.year if week else None,
        iso_week=week.week if week else None,
        week_start=week.monday if week else None,
        week_end=week.sunday if week else None,
    )
