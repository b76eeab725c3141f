from datetime import time, timedelta
import logging

import pytest
from sqlalchemy.exc import OperationalError

from dormbooking.core.auth import Identity
from dormbooking.core.errors import (
    BookingConflict,
    BookingNotFound,
    InvalidUnits,
    NotAuthorized,
    QuotaExceeded,
    SlotExpired,
    SlotFull,
    SlotNotFound,
)
from dormbooking.db import models
from dormbooking.services import quota_cache
from dormbooking.services.booking_service import BookingService

from tests.conftest import MONDAY, SUNDAY_BEFORE, TUESDAY, WEDNESDAY, active_rows, slot_on

LAV = models.ResourceType.LAV
ASC = models.ResourceType.ASC
GYM = models.ResourceType.GYM

RESIDENT_A = Identity("user-a", frozenset({models.AppRole.resident}))
RESIDENT_B = Identity("user-b", frozenset({models.AppRole.resident}))
STAFF = Identity("staff-1", frozenset({models.AppRole.staff}))


def test_repeated_create_returns_same_booking(service, catalog):
    slot = slot_on(catalog, LAV, TUESDAY)

    first = service.create_booking("user-a", LAV, slot.id, TUESDAY, 1)
    second = service.create_booking("user-a", LAV, slot.id, TUESDAY, 1)

    assert first.id == second.id
    assert len(active_rows(catalog, "user-a", slot.id, TUESDAY)) == 1


def test_repeated_create_succeeds_even_at_quota(service, catalog):
    slot = slot_on(catalog, LAV, TUESDAY)
    other = slot_on(catalog, LAV, WEDNESDAY)
    booking = service.create_booking("user-a", LAV, slot.id, TUESDAY, 2)
    service.create_booking("user-a", LAV, other.id, WEDNESDAY, 1)

    again = service.create_booking("user-a", LAV, slot.id, TUESDAY, 2)

    assert again.id == booking.id


def test_full_washer_slot_rejects_other_resident(service, catalog):
    slot = slot_on(catalog, LAV, MONDAY)

    booking = service.create_booking("user-a", LAV, slot.id, MONDAY, 2)
    assert booking.status == models.BookingStatus.booked
    assert service.ledger.taken_units(slot.id, MONDAY) == 2

    with pytest.raises(SlotFull):
        service.create_booking("user-b", LAV, slot.id, MONDAY, 1)


def test_shared_washer_slot_allows_two_residents(service, catalog):
    slot = slot_on(catalog, LAV, TUESDAY)

    service.create_booking("user-a", LAV, slot.id, TUESDAY, 1)
    service.create_booking("user-b", LAV, slot.id, TUESDAY, 1)

    assert service.ledger.taken_units(slot.id, TUESDAY) == 2
    with pytest.raises(SlotFull):
        service.create_booking("user-c", LAV, slot.id, TUESDAY, 1)


def test_washer_weekly_unit_quota(service, catalog):
    service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY, 2)
    wednesday = slot_on(catalog, LAV, WEDNESDAY)

    with pytest.raises(QuotaExceeded) as exc_info:
        service.create_booking("user-a", LAV, wednesday.id, WEDNESDAY, 2)
    assert exc_info.value.limit == 3
    assert exc_info.value.current_usage == 2
    assert exc_info.value.message == "Weekly quota exceeded: max 3 washer units per week"
    assert active_rows(catalog, "user-a", wednesday.id, WEDNESDAY) == []

    booking = service.create_booking("user-a", LAV, wednesday.id, WEDNESDAY, 1)
    assert booking.units == 1
    assert service.weekly_usage("user-a", LAV, WEDNESDAY).used == 3


def test_washer_quota_resets_with_next_iso_week(service, catalog):
    service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY, 2)
    service.create_booking("user-a", LAV, slot_on(catalog, LAV, WEDNESDAY).id, WEDNESDAY, 1)
    next_tuesday = TUESDAY + timedelta(days=7)

    booking = service.create_booking(
        "user-a", LAV, slot_on(catalog, LAV, next_tuesday).id, next_tuesday, 2
    )

    assert booking.booking_date == next_tuesday


def test_dryer_weekly_booking_quota(service, catalog):
    service.create_booking("user-a", ASC, slot_on(catalog, ASC, TUESDAY).id, TUESDAY)
    service.create_booking("user-a", ASC, slot_on(catalog, ASC, WEDNESDAY).id, WEDNESDAY)

    thursday = WEDNESDAY + timedelta(days=1)
    with pytest.raises(QuotaExceeded) as exc_info:
        service.create_booking("user-a", ASC, slot_on(catalog, ASC, thursday).id, thursday)
    assert exc_info.value.limit == 2
    assert "dryer" in exc_info.value.message


def test_dryer_takes_a_single_unit(service, catalog):
    slot = slot_on(catalog, ASC, TUESDAY)

    with pytest.raises(InvalidUnits):
        service.create_booking("user-a", ASC, slot.id, TUESDAY, 2)


@pytest.mark.parametrize("units", [0, 3])
def test_washer_units_must_be_one_or_two(service, catalog, units):
    slot = slot_on(catalog, LAV, TUESDAY)

    with pytest.raises(InvalidUnits):
        service.create_booking("user-a", LAV, slot.id, TUESDAY, units)


def test_gym_allows_one_upcoming_booking(service, catalog):
    first = service.create_booking("user-c", GYM, slot_on(catalog, GYM, TUESDAY).id, TUESDAY)
    wednesday = slot_on(catalog, GYM, WEDNESDAY, time(18, 30))

    with pytest.raises(QuotaExceeded) as exc_info:
        service.create_booking("user-c", GYM, wednesday.id, WEDNESDAY)
    assert "upcoming gym booking" in exc_info.value.message

    service.cancel_booking(first.id, Identity("user-c"))
    second = service.create_booking("user-c", GYM, wednesday.id, WEDNESDAY)

    assert second.status == models.BookingStatus.booked


def test_gym_cap_is_not_weekly(service, catalog):
    service.create_booking("user-c", GYM, slot_on(catalog, GYM, TUESDAY).id, TUESDAY)
    far_away = TUESDAY + timedelta(days=21)

    with pytest.raises(QuotaExceeded):
        service.create_booking("user-c", GYM, slot_on(catalog, GYM, far_away).id, far_away)


def test_gym_cap_ignores_past_days(service, catalog):
    past_slot = slot_on(catalog, GYM, SUNDAY_BEFORE)
    catalog.add(
        models.Booking(
            user_id="user-c",
            slot_id=past_slot.id,
            booking_date=SUNDAY_BEFORE,
            resource_type=GYM,
            units=1,
        )
    )
    catalog.commit()

    booking = service.create_booking("user-c", GYM, slot_on(catalog, GYM, TUESDAY).id, TUESDAY)

    assert booking.id is not None
    assert service.weekly_usage("user-c", GYM, TUESDAY).used == 1


def test_expired_slot_cannot_be_booked(service, catalog):
    slot = slot_on(catalog, LAV, SUNDAY_BEFORE)

    with pytest.raises(SlotExpired):
        service.create_booking("user-a", LAV, slot.id, SUNDAY_BEFORE, 1)


def test_expiry_checked_before_units_and_capacity(service, catalog):
    slot = slot_on(catalog, ASC, SUNDAY_BEFORE)

    with pytest.raises(SlotExpired):
        service.create_booking("user-a", ASC, slot.id, SUNDAY_BEFORE, 5)


def test_slot_must_match_resource_and_weekday(service, catalog):
    lav_tuesday = slot_on(catalog, LAV, TUESDAY)

    with pytest.raises(SlotNotFound):
        service.create_booking("user-a", GYM, lav_tuesday.id, TUESDAY)
    with pytest.raises(SlotNotFound):
        service.create_booking("user-a", LAV, lav_tuesday.id, WEDNESDAY)
    with pytest.raises(SlotNotFound):
        service.create_booking("user-a", LAV, 99999, TUESDAY)


def test_inactive_slot_cannot_be_booked(service, catalog):
    slot = slot_on(catalog, LAV, TUESDAY)
    slot.is_active = False
    catalog.commit()

    with pytest.raises(SlotNotFound):
        service.create_booking("user-a", LAV, slot.id, TUESDAY)


def test_rebooking_after_cancellation_creates_new_row(service, catalog):
    slot = slot_on(catalog, LAV, TUESDAY)
    booking = service.create_booking("user-a", LAV, slot.id, TUESDAY, 1)
    service.cancel_booking(booking.id, RESIDENT_A)

    new_booking = service.create_booking("user-a", LAV, slot.id, TUESDAY, 1)

    assert new_booking.id != booking.id
    catalog.refresh(booking)
    assert booking.status == models.BookingStatus.cancelled
    assert len(active_rows(catalog, "user-a", slot.id, TUESDAY)) == 1


def _miss_lookups(service, monkeypatch, misses):
    """Make the first ``misses`` duplicate lookups come back empty, as for a racing request."""
    real_find_active = service.ledger.find_active
    calls = []

    def lagging_find_active(*args, **kwargs):
        calls.append(args)
        if len(calls) <= misses:
            return None
        return real_find_active(*args, **kwargs)

    monkeypatch.setattr(service.ledger, "find_active", lagging_find_active)
    return calls


def test_identical_request_committed_during_lock_wait_on_full_slot(service, catalog, monkeypatch):
    slot = slot_on(catalog, ASC, TUESDAY)
    winner = service.create_booking("user-a", ASC, slot.id, TUESDAY)
    calls = _miss_lookups(service, monkeypatch, misses=1)

    result = service.create_booking("user-a", ASC, slot.id, TUESDAY)

    assert result.id == winner.id
    assert len(calls) == 2
    assert len(active_rows(catalog, "user-a", slot.id, TUESDAY)) == 1


def test_identical_request_committed_during_lock_wait_at_quota(service, catalog, monkeypatch):
    service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY, 2)
    slot = slot_on(catalog, LAV, WEDNESDAY)
    winner = service.create_booking("user-a", LAV, slot.id, WEDNESDAY, 1)
    assert service.weekly_usage("user-a", LAV, WEDNESDAY).used == 3
    _miss_lookups(service, monkeypatch, misses=1)

    result = service.create_booking("user-a", LAV, slot.id, WEDNESDAY, 1)

    assert result.id == winner.id
    assert service.weekly_usage("user-a", LAV, WEDNESDAY).used == 3


def test_identical_request_resolved_by_unique_index(service, catalog, monkeypatch):
    slot = slot_on(catalog, LAV, TUESDAY)
    winner = service.create_booking("user-a", LAV, slot.id, TUESDAY, 1)
    calls = _miss_lookups(service, monkeypatch, misses=2)

    result = service.create_booking("user-a", LAV, slot.id, TUESDAY, 1)

    assert result.id == winner.id
    assert len(calls) == 3
    assert len(active_rows(catalog, "user-a", slot.id, TUESDAY)) == 1


def test_quota_lock_taken_before_usage_is_read(service, catalog, monkeypatch):
    events = []
    real_lock_slot = service.ledger.lock_slot
    real_lock_user_quota = service.ledger.lock_user_quota
    real_sum_active_units = service.ledger.sum_active_units

    def lock_slot(slot_id):
        events.append("slot")
        return real_lock_slot(slot_id)

    def lock_user_quota(user_id, resource_type):
        events.append(("quota", user_id, resource_type))
        return real_lock_user_quota(user_id, resource_type)

    def sum_active_units(*args):
        events.append("usage")
        return real_sum_active_units(*args)

    monkeypatch.setattr(service.ledger, "lock_slot", lock_slot)
    monkeypatch.setattr(service.ledger, "lock_user_quota", lock_user_quota)
    monkeypatch.setattr(service.ledger, "sum_active_units", sum_active_units)

    service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY, 1)

    assert events[:4] == ["slot", ("quota", "user-a", LAV), "usage", "usage"]


def test_quota_recheck_reports_usage_after_insert(service, catalog, monkeypatch):
    service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY, 2)
    wednesday = slot_on(catalog, LAV, WEDNESDAY)
    real_sum_active_units = service.ledger.sum_active_units
    calls = []

    def stale_then_real(*args):
        calls.append(args)
        if len(calls) == 1:
            return 0
        return real_sum_active_units(*args)

    monkeypatch.setattr(service.ledger, "sum_active_units", stale_then_real)

    with pytest.raises(QuotaExceeded) as exc_info:
        service.create_booking("user-a", LAV, wednesday.id, WEDNESDAY, 2)

    decision = exc_info.value.decision
    assert decision.allowed is False
    assert decision.current_usage == 2
    assert decision.requested == 2
    assert exc_info.value.current_usage == 2
    assert active_rows(catalog, "user-a", wednesday.id, WEDNESDAY) == []


def test_conflict_without_winner_rechecks_capacity(service, catalog, monkeypatch):
    slot = slot_on(catalog, LAV, TUESDAY)

    def insert_after_slot_filled(booking):
        catalog.add(
            models.Booking(
                user_id="user-b",
                slot_id=slot.id,
                booking_date=TUESDAY,
                resource_type=LAV,
                units=2,
            )
        )
        catalog.commit()
        raise BookingConflict()

    monkeypatch.setattr(service.ledger, "insert", insert_after_slot_filled)

    with pytest.raises(SlotFull):
        service.create_booking("user-a", LAV, slot.id, TUESDAY, 1)


def test_capacity_rechecked_after_insert(service, catalog, monkeypatch):
    slot = slot_on(catalog, LAV, TUESDAY)
    service.create_booking("user-b", LAV, slot.id, TUESDAY, 2)
    real_taken_units = service.ledger.taken_units
    calls = []

    def stale_then_real(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            return 0
        return real_taken_units(*args, **kwargs)

    monkeypatch.setattr(service.ledger, "taken_units", stale_then_real)

    with pytest.raises(SlotFull):
        service.create_booking("user-a", LAV, slot.id, TUESDAY, 1)

    assert active_rows(catalog, "user-a", slot.id, TUESDAY) == []
    assert real_taken_units(slot.id, TUESDAY) == 2


def test_owner_cancels_and_releases_capacity(service, catalog):
    slot = slot_on(catalog, LAV, TUESDAY)
    booking = service.create_booking("user-a", LAV, slot.id, TUESDAY, 2)

    cancelled = service.cancel_booking(booking.id, RESIDENT_A)

    assert cancelled.status == models.BookingStatus.cancelled
    assert cancelled.cancelled_by == "user-a"
    assert cancelled.cancellation_reason == "user_cancelled"
    assert cancelled.cancelled_at is not None
    assert service.ledger.taken_units(slot.id, TUESDAY) == 0
    assert service.weekly_usage("user-a", LAV, TUESDAY).used == 0
    service.create_booking("user-b", LAV, slot.id, TUESDAY, 2)


def test_resident_cannot_cancel_someone_elses_booking(service, catalog):
    booking = service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY)

    with pytest.raises(NotAuthorized):
        service.cancel_booking(booking.id, RESIDENT_B)

    catalog.refresh(booking)
    assert booking.status == models.BookingStatus.booked


def test_staff_can_cancel_any_booking(service, catalog):
    booking = service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY)

    cancelled = service.cancel_booking(booking.id, STAFF)

    assert cancelled.status == models.BookingStatus.cancelled
    assert cancelled.cancelled_by == "staff-1"
    assert cancelled.cancellation_reason == "staff_cancelled"


def test_cancel_twice_is_not_found(service, catalog):
    booking = service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY)
    service.cancel_booking(booking.id, RESIDENT_A, reason="plans changed")

    with pytest.raises(BookingNotFound):
        service.cancel_booking(booking.id, RESIDENT_A)
    with pytest.raises(BookingNotFound):
        service.cancel_booking(424242, RESIDENT_A)


def test_elapsed_booking_cannot_be_cancelled(service, catalog):
    slot = slot_on(catalog, LAV, SUNDAY_BEFORE)
    booking = models.Booking(
        user_id="user-a",
        slot_id=slot.id,
        booking_date=SUNDAY_BEFORE,
        resource_type=LAV,
        units=1,
    )
    catalog.add(booking)
    catalog.commit()

    with pytest.raises(SlotExpired):
        service.cancel_booking(booking.id, RESIDENT_A)


def test_no_show_booking_cannot_be_cancelled(service, catalog):
    booking = service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY)
    booking.status = models.BookingStatus.no_show
    catalog.commit()

    with pytest.raises(BookingNotFound):
        service.cancel_booking(booking.id, STAFF)


def test_create_and_cancel_write_audit_entries(service, catalog):
    booking = service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY, 2)
    service.cancel_booking(booking.id, STAFF, reason="machine broken")

    logs = catalog.query(models.AuditLog).order_by(models.AuditLog.id).all()

    assert [log.action for log in logs] == ["booking_created", "booking_cancelled"]
    assert logs[0].actor_type == models.ActorType.user
    assert logs[1].actor_type == models.ActorType.staff
    assert logs[1].actor_id == "staff-1"
    assert logs[1].payload["reason"] == "machine broken"
    assert all(log.entity_id == booking.id for log in logs)


def test_mutations_refresh_weekly_quota_counters(service, catalog):
    lav = service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY, 2)
    service.create_booking("user-a", ASC, slot_on(catalog, ASC, WEDNESDAY).id, WEDNESDAY)

    row = catalog.query(models.WeeklyQuota).filter_by(user_id="user-a").one()
    assert (row.year, row.week_number) == (2025, 46)
    assert (row.lav_count, row.asc_count) == (2, 1)

    service.cancel_booking(lav.id, RESIDENT_A)
    catalog.refresh(row)
    assert (row.lav_count, row.asc_count) == (0, 1)


def test_weekly_usage_reports_limits(service, catalog):
    service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY, 2)

    usage = service.weekly_usage("user-a", LAV, MONDAY)

    assert usage.used == 2
    assert usage.limit == 3
    assert usage.remaining == 1
    assert usage.week.week == 46
    assert service.weekly_usage("user-a", GYM, MONDAY).week is None


def test_user_bookings_lists_upcoming_only(service, catalog):
    service.create_booking("user-a", LAV, slot_on(catalog, LAV, TUESDAY).id, TUESDAY)
    service.create_booking("user-a", GYM, slot_on(catalog, GYM, WEDNESDAY).id, WEDNESDAY)
    past_slot = slot_on(catalog, ASC, SUNDAY_BEFORE)
    catalog.add(
        models.Booking(
            user_id="user-a",
            slot_id=past_slot.id,
            booking_date=SUNDAY_BEFORE,
            resource_type=ASC,
            units=1,
        )
    )
    catalog.commit()

    bookings = service.user_bookings("user-a")

    assert [b.booking_date for b in bookings] == [TUESDAY, WEDNESDAY]


def test_services_share_state_only_through_the_store(catalog, clock, settings):
    slot = slot_on(catalog, LAV, TUESDAY)
    first = BookingService(catalog, clock=clock, settings=settings)
    second = BookingService(catalog, clock=clock, settings=settings)

    booking = first.create_booking("user-a", LAV, slot.id, TUESDAY)

    assert second.create_booking("user-a", LAV, slot.id, TUESDAY).id == booking.id


def test_failed_counter_refresh_keeps_committed_booking(service, catalog, monkeypatch, caplog):
    def unavailable(*args, **kwargs):
        raise OperationalError("UPDATE weekly_quotas", {}, Exception("database is locked"))

    monkeypatch.setattr(quota_cache, "reconcile_weekly_quota", unavailable)
    slot = slot_on(catalog, LAV, TUESDAY)

    with caplog.at_level(logging.ERROR, logger="dormbooking.services.booking_service"):
        booking = service.create_booking("user-a", LAV, slot.id, TUESDAY, 1)

    assert booking.status == models.BookingStatus.booked
    assert len(active_rows(catalog, "user-a", slot.id, TUESDAY)) == 1
    assert "Failed to refresh weekly quota counters" in caplog.text
