from . import bookings, misc, quota, slots

__all__ = [
    "bookings",
    "misc",
    "quota",
    "slots",
]
