"""Restaurant and staff tables."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.entities import Restaurant, Staff, StaffRole
from ..core.state_machine import utcnow
from .base import Base, as_utc


class RestaurantRecord(Base):
    """Restaurant row; only its existence matters to the order core."""

    __tablename__ = "restaurants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def to_domain(self) -> Restaurant:
        return Restaurant(id=self.id, name=self.name, is_active=self.is_active)


class StaffRecord(Base):
    """Cook or waiter. Deactivated instead of deleted so old assignments resolve."""

    __tablename__ = "staff"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    restaurant_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[StaffRole] = mapped_column(SQLEnum(StaffRole), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def to_domain(self) -> Staff:
        return Staff(
            id=self.id,
            restaurant_id=self.restaurant_id,
            full_name=self.full_name,
            role=self.role,
            is_active=self.is_active,
            created_at=as_utc(self.created_at),
        )
