from datetime import datetime
from sqlalchemy import DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
from ..session import Base


class WeeklyQuota(Base):
    """Per-week usage counters. Rebuilt from the bookings table, never trusted on its own."""

    __tablename__ = "weekly_quotas"
    __table_args__ = (
        UniqueConstraint("user_id", "year", "week_number", name="uq_weekly_quota_user_week"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    lav_count: Mapped[int] = mapped_column(Integer, default=0)
    asc_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
