"""Order table.

Line items live in a JSON column on the order row, so concurrent item
updates contend on the whole row; version_id is the optimistic lock that
keeps them from overwriting each other.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Enum as SQLEnum, Float, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.entities import LineItem, Order
from ..core.state_machine import OrderStatus, StatusTransition, utcnow
from .base import Base, as_utc


class OrderRecord(Base):
    """Customer order with embedded line items."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    restaurant_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)

    # Customer
    customer_name: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    table_number: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Content
    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    total: Mapped[float] = mapped_column(Float, nullable=False)

    # Lifecycle
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus), default=OrderStatus.PENDING, index=True
    )
    history: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    ordered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Optimistic lock, incremented on every update
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    @classmethod
    def from_domain(cls, order: Order) -> "OrderRecord":
        return cls(
            id=order.id,
            restaurant_id=order.restaurant_id,
            customer_name=order.customer_name,
            customer_phone=order.customer_phone,
            table_number=order.table_number,
            notes=order.notes,
            items=[item.to_dict() for item in order.items],
            total=order.total,
            status=order.status,
            history=[t.to_dict() for t in order.history],
            ordered_at=order.ordered_at,
            updated_at=order.updated_at,
            version_id=order.version,
        )

    def to_domain(self) -> Order:
        return Order(
            id=self.id,
            restaurant_id=self.restaurant_id,
            customer_name=self.customer_name,
            customer_phone=self.customer_phone,
            table_number=self.table_number,
            notes=self.notes,
            items=[LineItem.from_dict(data) for data in self.items or []],
            total=self.total,
            status=self.status,
            history=[StatusTransition.from_dict(data) for data in self.history or []],
            ordered_at=as_utc(self.ordered_at),
            updated_at=as_utc(self.updated_at),
            version=self.version_id,
        )
