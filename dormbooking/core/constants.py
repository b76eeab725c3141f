"""Common application-wide constants."""

from datetime import time, timedelta

# Every bookable window lasts 90 minutes; the day runs 08:00 -> 23:00
SLOT_DURATION = timedelta(minutes=90)
FIRST_SLOT_START = time(8, 0)
LAST_SLOT_END = time(23, 0)
SLOTS_PER_DAY = 10

# Metadata for booking cancellations
USER_CANCEL_REASON = "user_cancelled"
STAFF_CANCEL_REASON = "staff_cancelled"


__all__ = [
    "SLOT_DURATION",
    "FIRST_SLOT_START",
    "LAST_SLOT_END",
    "SLOTS_PER_DAY",
    "USER_CANCEL_REASON",
    "STAFF_CANCEL_REASON",
]
