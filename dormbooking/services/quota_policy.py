"""Per-resource booking quotas.

Washers are capped on units per ISO week, dryers on bookings per ISO week and
the gym on upcoming bookings at any point in time. Everything here is pure:
callers measure usage from the ledger and ask for a decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from ..config import Settings
from ..db.models import ResourceType


class QuotaBasis(str, Enum):
    weekly_units = "weekly_units"
    weekly_count = "weekly_count"
    future_count = "future_count"


@dataclass(frozen=True, slots=True)
class WeeklyUnitCap:
    limit: int
    basis = QuotaBasis.weekly_units


@dataclass(frozen=True, slots=True)
class WeeklyCountCap:
    limit: int
    basis = QuotaBasis.weekly_count


@dataclass(frozen=True, slots=True)
class StandingFutureCap:
    limit: int
    basis = QuotaBasis.future_count


QuotaRule = WeeklyUnitCap | WeeklyCountCap | StandingFutureCap


@dataclass(frozen=True, slots=True)
class IsoWeek:
    year: int
    week: int

    @property
    def monday(self) -> date:
        return date.fromisocalendar(self.year, self.week, 1)

    @property
    def sunday(self) -> date:
        return self.monday + timedelta(days=6)

    def dates(self) -> tuple[date, date]:
        return self.monday, self.sunday


@dataclass(frozen=True, slots=True)
class QuotaDecision:
    allowed: bool
    rule: QuotaRule
    current_usage: int
    requested: int

    @property
    def limit(self) -> int:
        return self.rule.limit

    @property
    def remaining(self) -> int:
        return max(self.rule.limit - self.current_usage, 0)


def iso_week(day: date) -> IsoWeek:
    year, week, _ = day.isocalendar()
    return IsoWeek(year=year, week=week)


def rule_for(resource_type: ResourceType, settings: Settings) -> QuotaRule:
    if resource_type == ResourceType.LAV:
        return WeeklyUnitCap(settings.max_lav_units_per_week)
    if resource_type == ResourceType.ASC:
        return WeeklyCountCap(settings.max_asc_bookings_per_week)
    return StandingFutureCap(settings.max_gym_active_bookings)


def charge_for(rule: QuotaRule, units: int) -> int:
    # Count based rules charge one per booking whatever the unit count
    if isinstance(rule, WeeklyUnitCap):
        return units
    return 1


def can_add(rule: QuotaRule, current_usage: int, units_requested: int) -> QuotaDecision:
    requested = charge_for(rule, units_requested)
    return QuotaDecision(
        allowed=current_usage + requested <= rule.limit,
        rule=rule,
        current_usage=current_usage,
        requested=requested,
    )


def quota_message(resource_type: ResourceType, rule: QuotaRule) -> str:
    if isinstance(rule, StandingFutureCap):
        noun = "booking" if rule.limit == 1 else "bookings"
        return (
            f"You can only have {rule.limit} upcoming gym {noun}. "
            "Cancel an existing booking first."
        )
    if resource_type == ResourceType.LAV:
        label = "washer units"
    elif resource_type == ResourceType.ASC:
        label = "dryer bookings"
    else:
        label = "gym bookings"
    return f"Weekly quota exceeded: max {rule.limit} {label} per week"
