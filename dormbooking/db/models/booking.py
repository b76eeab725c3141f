from datetime import date, datetime
from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base
from .enums import BookingStatus, ResourceType

ACTIVE_BOOKING_INDEX = "uq_active_booking_per_slot"


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint(
            "(resource_type = 'LAV' AND units IN (1, 2)) OR "
            "(resource_type IN ('ASC', 'GYM') AND units = 1)",
            name="bookings_units_check",
        ),
        Index(
            ACTIVE_BOOKING_INDEX,
            "user_id",
            "slot_id",
            "booking_date",
            "resource_type",
            unique=True,
            postgresql_where=text("status = 'booked'"),
            sqlite_where=text("status = 'booked'"),
        ),
        Index("idx_bookings_user_date", "user_id", "booking_date"),
        Index("idx_bookings_slot_date", "slot_id", "booking_date", "resource_type"),
        Index(
            "idx_bookings_user_week_resource",
            "user_id",
            "resource_type",
            "booking_date",
            "status",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    slot_id: Mapped[int] = mapped_column(ForeignKey("slots.id", ondelete="CASCADE"), nullable=False)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    resource_type: Mapped[ResourceType] = mapped_column(Enum(ResourceType), nullable=False)
    units: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[BookingStatus] = mapped_column(Enum(BookingStatus), default=BookingStatus.booked)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_by: Mapped[str | None] = mapped_column(String(64))
    cancellation_reason: Mapped[str | None] = mapped_column(String(255))

    slot = relationship("Slot", back_populates="bookings")
