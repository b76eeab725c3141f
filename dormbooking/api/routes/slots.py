from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from ...api import deps
from ...core.clock import Clock
from ...db.session import get_db
from ...db import models, schemas
from ...services import slot_catalog

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("", response_model=schemas.WeekGrid)
def week_slots(
    resource_type: models.ResourceType,
    week_of: date | None = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(deps.get_clock),
):
    day = week_of or clock.today()
    days = slot_catalog.week_dates(day)
    grid = slot_catalog.week_grid(db, resource_type, day, clock)
    return schemas.WeekGrid(
        resource_type=resource_type,
        week_start=days[0],
        week_end=days[-1],
        slots=[schemas.SlotOccupancy.model_validate(cell) for cell in grid],
    )


@router.get("/catalog", response_model=list[schemas.Slot])
def catalog(resource_type: models.ResourceType, db: Session = Depends(get_db)):
    return slot_catalog.list_slots(db, resource_type)
