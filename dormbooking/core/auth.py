from dataclasses import dataclass, field

from ..db import models

STAFF_ROLES = frozenset({models.AppRole.staff, models.AppRole.admin})


@dataclass(frozen=True, slots=True)
class Identity:
    user_id: str
    roles: frozenset[models.AppRole] = field(default_factory=frozenset)

    @property
    def is_staff(self) -> bool:
        return bool(self.roles & STAFF_ROLES)


def can_manage(identity: Identity, booking: models.Booking) -> bool:
    return booking.user_id == identity.user_id or identity.is_staff
