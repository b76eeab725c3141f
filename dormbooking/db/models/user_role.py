from datetime import datetime
from sqlalchemy import DateTime, Enum, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
from ..session import Base
from .enums import AppRole


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_role"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[AppRole] = mapped_column(Enum(AppRole), default=AppRole.resident)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
