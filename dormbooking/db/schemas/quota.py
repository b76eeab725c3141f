from datetime import date
from pydantic import BaseModel

from ..models import ResourceType


class QuotaUsage(BaseModel):
    resource_type: ResourceType
    basis: str
    used: int
    limit: int
    remaining: int
    iso_year: int | None = None
    iso_week: int | None = None
    week_start: date | None = None
    week_end: date | None = None
