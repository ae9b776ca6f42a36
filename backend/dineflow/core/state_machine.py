"""Line item and order lifecycle state machines."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..exceptions import InvalidTransition

if TYPE_CHECKING:
    from .entities import LineItem, Order


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CookStatus(str, Enum):
    """Cook-side progress of a line item."""

    PENDING = "pending"
    PREPARING = "preparing"
    COMPLETED = "completed"

    @classmethod
    def _missing_(cls, value):
        if value == "complete":
            return cls.COMPLETED
        return None


class WaiterStatus(str, Enum):
    """Waiter-side progress of a line item."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    SERVED = "served"


class ItemStatus(str, Enum):
    """Combined display status of a line item."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class OrderStatus(str, Enum):
    """Order lifecycle states, in advancing order."""

    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVING = "serving"
    SERVED = "served"
    COMPLETED = "completed"

    @classmethod
    def _missing_(cls, value):
        # Staff-facing name for "all dishes cooked"
        if value == "food_prepared":
            return cls.READY
        return None

    @property
    def rank(self) -> int:
        return ORDER_STATUS_SEQUENCE.index(self)

    @property
    def is_terminal(self) -> bool:
        return self == OrderStatus.COMPLETED


ORDER_STATUS_SEQUENCE = [
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.SERVING,
    OrderStatus.SERVED,
    OrderStatus.COMPLETED,
]


@dataclass
class StatusTransition:
    """Record of an order status transition."""

    from_status: OrderStatus
    to_status: OrderStatus
    timestamp: datetime
    trigger: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "timestamp": self.timestamp.isoformat(),
            "trigger": self.trigger,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StatusTransition":
        return cls(
            from_status=OrderStatus(data["from_status"]),
            to_status=OrderStatus(data["to_status"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            trigger=data.get("trigger", "unknown"),
            metadata=data.get("metadata") or {},
        )


class ItemStateMachine:
    """
    Tracks the two independent progress tracks of one line item.

    Cook side:   PENDING → PREPARING → COMPLETED
    Waiter side: PENDING → ACCEPTED → SERVED

    Each side moves one step at a time and never regresses. The sides are
    not ordered against each other: a waiter may accept or serve an item
    whose cook side is not completed yet.
    """

    COOK_TRANSITIONS = {
        CookStatus.PENDING: CookStatus.PREPARING,
        CookStatus.PREPARING: CookStatus.COMPLETED,
    }

    WAITER_TRANSITIONS = {
        WaiterStatus.PENDING: WaiterStatus.ACCEPTED,
        WaiterStatus.ACCEPTED: WaiterStatus.SERVED,
    }

    def __init__(self, item: "LineItem"):
        self.item = item

    def can_advance_cook(self, to_status: CookStatus) -> bool:
        return self.COOK_TRANSITIONS.get(self.item.cook_status) == to_status

    def can_advance_waiter(self, to_status: WaiterStatus) -> bool:
        return self.WAITER_TRANSITIONS.get(self.item.waiter_status) == to_status

    def advance_cook(self, to_status: CookStatus) -> None:
        """Move the cook side to its immediate successor."""
        if not self.can_advance_cook(to_status):
            raise InvalidTransition(
                f"Cook status cannot move from {self.item.cook_status.value} "
                f"to {to_status.value}",
                {"line_id": self.item.line_id, "side": "cook"},
            )
        self.item.cook_status = to_status

    def advance_waiter(self, to_status: WaiterStatus) -> None:
        """Move the waiter side to its immediate successor."""
        if not self.can_advance_waiter(to_status):
            raise InvalidTransition(
                f"Waiter status cannot move from {self.item.waiter_status.value} "
                f"to {to_status.value}",
                {"line_id": self.item.line_id, "side": "waiter"},
            )
        self.item.waiter_status = to_status

    @staticmethod
    def is_done(item: "LineItem") -> bool:
        return (
            item.cook_status == CookStatus.COMPLETED
            and item.waiter_status == WaiterStatus.SERVED
        )

    @property
    def status(self) -> ItemStatus:
        if self.is_done(self.item):
            return ItemStatus.DONE
        if (
            self.item.cook_status == CookStatus.PENDING
            and self.item.waiter_status == WaiterStatus.PENDING
        ):
            return ItemStatus.PENDING
        return ItemStatus.IN_PROGRESS


class OrderStateMachine:
    """
    Derives and guards the order-level status.

    Explicit staff commands follow VALID_TRANSITIONS. Item activity promotes
    the status automatically, but only forward. COMPLETED is reachable only
    when every item is done (cook COMPLETED and waiter SERVED).
    """

    VALID_TRANSITIONS = {
        OrderStatus.PENDING: [OrderStatus.PREPARING],
        OrderStatus.PREPARING: [OrderStatus.READY, OrderStatus.SERVING],
        OrderStatus.READY: [OrderStatus.SERVING, OrderStatus.COMPLETED],
        OrderStatus.SERVING: [OrderStatus.SERVED, OrderStatus.COMPLETED],
        OrderStatus.SERVED: [OrderStatus.COMPLETED],
        OrderStatus.COMPLETED: [],
    }

    def __init__(self, order: "Order"):
        self.order = order

    @property
    def current_state(self) -> OrderStatus:
        return self.order.status

    def all_items_done(self) -> bool:
        return bool(self.order.items) and all(
            ItemStateMachine.is_done(item) for item in self.order.items
        )

    def can_transition(self, to_state: OrderStatus) -> bool:
        """Check if an explicit transition to state is valid."""
        valid_next = self.VALID_TRANSITIONS.get(self.current_state, [])
        if to_state not in valid_next:
            return False
        if to_state == OrderStatus.COMPLETED:
            return self.all_items_done()
        return True

    def transition(
        self,
        to_state: OrderStatus,
        trigger: str = "manual",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StatusTransition:
        """Apply an explicit staff status command."""
        if not self.can_transition(to_state):
            reason = "not a forward step"
            if to_state == OrderStatus.COMPLETED and not self.current_state.is_terminal:
                reason = "not every item is cooked and served"
            raise InvalidTransition(
                f"Order status cannot move from {self.current_state.value} "
                f"to {to_state.value}: {reason}",
                {"order_id": self.order.id},
            )
        return self._record(to_state, trigger, metadata)

    def derive_from_items(self) -> OrderStatus:
        """Status implied purely by item progress."""
        items = self.order.items
        if not items:
            return OrderStatus.PENDING
        if self.all_items_done():
            return OrderStatus.COMPLETED
        if all(i.waiter_status == WaiterStatus.SERVED for i in items):
            return OrderStatus.SERVED
        if any(i.waiter_status != WaiterStatus.PENDING for i in items):
            return OrderStatus.SERVING
        if all(i.cook_status == CookStatus.COMPLETED for i in items):
            return OrderStatus.READY
        if any(i.cook_status != CookStatus.PENDING for i in items):
            return OrderStatus.PREPARING
        return OrderStatus.PENDING

    def promote(
        self,
        trigger: str = "item_update",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[StatusTransition]:
        """Advance to the item-derived status if it ranks higher."""
        derived = self.derive_from_items()
        if derived.rank <= self.current_state.rank:
            return None
        return self._record(derived, trigger, metadata)

    def _record(
        self,
        to_state: OrderStatus,
        trigger: str,
        metadata: Optional[Dict[str, Any]],
    ) -> StatusTransition:
        transition = StatusTransition(
            from_status=self.current_state,
            to_status=to_state,
            timestamp=utcnow(),
            trigger=trigger,
            metadata=metadata or {},
        )
        self.order.history.append(transition)
        self.order.status = to_state
        return transition
