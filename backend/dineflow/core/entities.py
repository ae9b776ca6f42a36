"""Domain records exchanged between the order core and the order store."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .state_machine import (
    CookStatus,
    ItemStateMachine,
    ItemStatus,
    OrderStatus,
    StatusTransition,
    WaiterStatus,
    utcnow,
)


def new_id() -> str:
    return str(uuid.uuid4())


class StaffRole(str, Enum):
    """Roles that take part in order fan-out."""

    COOK = "cook"
    WAITER = "waiter"


@dataclass
class Restaurant:
    id: str
    name: str
    is_active: bool = True


@dataclass
class Staff:
    """Restaurant staff member eligible for assignment while active."""

    id: str
    restaurant_id: str
    full_name: str
    role: StaffRole
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "full_name": self.full_name,
            "role": self.role.value,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class CustomerInfo:
    name: str
    phone: Optional[str] = None


@dataclass
class CartItem:
    """One dish entry of a customer's cart before assignment."""

    dish_id: str
    name: str
    quantity: int
    price: float


@dataclass
class LineItem:
    """One dish entry within an order, with its assignment and progress."""

    line_id: str
    dish_id: str
    name: str
    quantity: int
    price: float
    assigned_cook_id: Optional[str] = None
    assigned_waiter_id: Optional[str] = None
    cook_status: CookStatus = CookStatus.PENDING
    waiter_status: WaiterStatus = WaiterStatus.PENDING

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity

    @property
    def status(self) -> ItemStatus:
        return ItemStateMachine(self).status

    def to_dict(self) -> dict:
        return {
            "line_id": self.line_id,
            "dish_id": self.dish_id,
            "name": self.name,
            "quantity": self.quantity,
            "price": self.price,
            "assigned_cook_id": self.assigned_cook_id,
            "assigned_waiter_id": self.assigned_waiter_id,
            "cook_status": self.cook_status.value,
            "waiter_status": self.waiter_status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        return cls(
            line_id=data["line_id"],
            dish_id=data["dish_id"],
            name=data["name"],
            quantity=int(data["quantity"]),
            price=float(data["price"]),
            assigned_cook_id=data.get("assigned_cook_id"),
            assigned_waiter_id=data.get("assigned_waiter_id"),
            cook_status=CookStatus(data.get("cook_status") or CookStatus.PENDING),
            waiter_status=WaiterStatus(data.get("waiter_status") or WaiterStatus.PENDING),
        )


@dataclass
class OrderDraft:
    """A fully assigned order ready for atomic creation."""

    restaurant_id: str
    customer: CustomerInfo
    table_number: int
    items: List[LineItem]
    total: float
    notes: Optional[str] = None
    ordered_at: datetime = field(default_factory=utcnow)


@dataclass
class Order:
    """Persisted order record."""

    id: str
    restaurant_id: str
    customer_name: str
    table_number: int
    items: List[LineItem]
    total: float
    status: OrderStatus = OrderStatus.PENDING
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    ordered_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 1
    history: List[StatusTransition] = field(default_factory=list)

    @classmethod
    def from_draft(cls, draft: OrderDraft, order_id: Optional[str] = None) -> "Order":
        return cls(
            id=order_id or new_id(),
            restaurant_id=draft.restaurant_id,
            customer_name=draft.customer.name,
            customer_phone=draft.customer.phone,
            table_number=draft.table_number,
            items=draft.items,
            total=draft.total,
            notes=draft.notes,
            ordered_at=draft.ordered_at,
            updated_at=draft.ordered_at,
        )

    def find_item(self, line_id: str) -> Optional[LineItem]:
        for item in self.items:
            if item.line_id == line_id:
                return item
        return None

    @property
    def is_open(self) -> bool:
        return not self.status.is_terminal

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses and change events."""
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "table_number": self.table_number,
            "items": [
                {**item.to_dict(), "status": item.status.value} for item in self.items
            ],
            "total": self.total,
            "status": self.status.value,
            "notes": self.notes,
            "ordered_at": self.ordered_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "version": self.version,
            "history": [t.to_dict() for t in self.history],
        }


@dataclass
class AssignedTask:
    """One line item as it appears in a cook's or waiter's queue."""

    order_id: str
    line_id: str
    dish_name: str
    quantity: int
    table_number: int
    customer_name: str
    order_status: OrderStatus
    cook_status: CookStatus
    waiter_status: WaiterStatus

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "line_id": self.line_id,
            "dish_name": self.dish_name,
            "quantity": self.quantity,
            "table_number": self.table_number,
            "customer_name": self.customer_name,
            "order_status": self.order_status.value,
            "cook_status": self.cook_status.value,
            "waiter_status": self.waiter_status.value,
        }
