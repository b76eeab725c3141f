from datetime import date, datetime, time
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from dormbooking.config import Settings
from dormbooking.core.clock import Clock
from dormbooking.db.session import Base
from dormbooking.db import models
from dormbooking.services import slot_catalog
from dormbooking.services.booking_service import BookingService

ROME = ZoneInfo("Europe/Rome")
# Monday of ISO week 2025-W46
NOW = datetime(2025, 11, 10, 9, 0, tzinfo=ROME)
MONDAY = date(2025, 11, 10)
TUESDAY = date(2025, 11, 11)
WEDNESDAY = date(2025, 11, 12)
SUNDAY_BEFORE = date(2025, 11, 9)


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings():
    return Settings()


@pytest.fixture()
def clock():
    return Clock.fixed(NOW)


@pytest.fixture()
def catalog(db_session, settings):
    slot_catalog.seed_catalog(db_session, settings)
    return db_session


@pytest.fixture()
def service(catalog, clock, settings):
    return BookingService(catalog, clock=clock, settings=settings)


def slot_on(db, resource_type: models.ResourceType, day: date, start: time = time(8, 0)) -> models.Slot:
    slot = slot_catalog.find_slot(db, resource_type, slot_catalog.day_of_week_for(day), start)
    assert slot is not None
    return slot


def active_rows(db, user_id: str, slot_id: int, booking_date: date) -> list[models.Booking]:
    return (
        db.query(models.Booking)
        .filter_by(
            user_id=user_id,
            slot_id=slot_id,
            booking_date=booking_date,
            status=models.BookingStatus.booked,
        )
        .all()
    )
