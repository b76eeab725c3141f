from enum import Enum as PyEnum


class ResourceType(str, PyEnum):
    LAV = "LAV"
    ASC = "ASC"
    GYM = "GYM"


class BookingStatus(str, PyEnum):
    booked = "booked"
    cancelled = "cancelled"
    no_show = "no_show"


class AppRole(str, PyEnum):
    resident = "resident"
    staff = "staff"
    admin = "admin"
