from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo


class Clock:
    """Current-time source pinned to the residence's reference timezone.

    ``now`` may be replaced with a fixed callable in tests; it must return an
    aware datetime.
    """

    def __init__(self, tz_name: str = "Europe/Rome", now: Callable[[], datetime] | None = None):
        self.tz = ZoneInfo(tz_name)
        self._now = now or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        current = self._now()
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return current.astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    @classmethod
    def fixed(cls, moment: datetime, tz_name: str = "Europe/Rome") -> "Clock":
        return cls(tz_name, now=lambda: moment)
