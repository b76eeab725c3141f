from datetime import datetime, time
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Integer,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base
from .enums import ResourceType


class Slot(Base):
    __tablename__ = "slots"
    __table_args__ = (
        UniqueConstraint(
            "resource_type", "day_of_week", "start_time", name="uq_slot_resource_day_start"
        ),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_slot_day_of_week"),
        CheckConstraint("capacity > 0", name="ck_slot_capacity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    resource_type: Mapped[ResourceType] = mapped_column(Enum(ResourceType), nullable=False)
    # 0 = Sunday .. 6 = Saturday
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    bookings = relationship("Booking", back_populates="slot")
