"""
Order Store Abstract Base Class

Persistence and change notification for restaurants, staff and orders.
The order core only reads, conditionally updates and subscribes; it never
holds records across awaits without re-reading them.

Implementations:
    - InMemoryOrderStore: process-local, used by tests and the memory backend
    - SqlOrderStore (sql_store.py): SQLAlchemy async engine
"""

import asyncio
import copy
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..core.entities import Order, OrderDraft, Restaurant, Staff, StaffRole, new_id
from ..core.state_machine import utcnow
from ..exceptions import Conflict, NotFound, PersistenceUnavailable, ValidationError

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS = ("items", "status", "history")


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


@dataclass
class OrderChange:
    """Pushed to subscribers after a successful write."""

    kind: ChangeKind
    order: Order

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "order": self.order.to_dict()}


ChangeCallback = Callable[[OrderChange], Union[None, Awaitable[None]]]


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() on teardown."""

    def __init__(
        self,
        feed: "ChangeFeed",
        callback: ChangeCallback,
        order_id: Optional[str] = None,
        restaurant_id: Optional[str] = None,
    ):
        self._feed = feed
        self.callback = callback
        self.order_id = order_id
        self.restaurant_id = restaurant_id
        self.active = True

    def matches(self, order: Order) -> bool:
        if self.order_id is not None and order.id != self.order_id:
            return False
        if self.restaurant_id is not None and order.restaurant_id != self.restaurant_id:
            return False
        return True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._feed._remove(self)


class ChangeFeed:
    """Observer registry with order / restaurant filters."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    def subscribe(
        self,
        callback: ChangeCallback,
        order_id: Optional[str] = None,
        restaurant_id: Optional[str] = None,
    ) -> Subscription:
        subscription = Subscription(self, callback, order_id, restaurant_id)
        self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, change: OrderChange) -> None:
        """Deliver a change to every matching subscriber.

        Subscriber errors are logged; they never fail the write that caused
        the change.
        """
        for subscription in list(self._subscriptions):
            if not subscription.active or not subscription.matches(change.order):
                continue
            event = OrderChange(kind=change.kind, order=copy.deepcopy(change.order))
            try:
                result = subscription.callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Change subscriber failed for order %s", change.order.id
                )


def apply_patch(order: Order, patch: Dict[str, Any]) -> Order:
    """Return a copy of order with the patch applied and the version bumped."""
    unknown = set(patch) - set(PATCHABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields cannot be patched: {sorted(unknown)}")

    updated = copy.deepcopy(order)
    for key, value in patch.items():
        setattr(updated, key, copy.deepcopy(value))
    updated.version = order.version + 1
    updated.updated_at = utcnow()
    return updated


class OrderStore(ABC):
    """Abstract base class for order persistence."""

    def __init__(self):
        self.feed = ChangeFeed()

    # Restaurants and staff

    @abstractmethod
    async def add_restaurant(self, name: str, restaurant_id: Optional[str] = None) -> Restaurant:
        pass

    @abstractmethod
    async def restaurant_exists(self, restaurant_id: str) -> bool:
        pass

    @abstractmethod
    async def add_staff(
        self,
        restaurant_id: str,
        full_name: str,
        role: StaffRole,
        staff_id: Optional[str] = None,
    ) -> Staff:
        pass

    @abstractmethod
    async def get_staff(self, staff_id: str) -> Staff:
        pass

    @abstractmethod
    async def deactivate_staff(self, staff_id: str) -> Staff:
        pass

    @abstractmethod
    async def list_staff(self, restaurant_id: str) -> List[Staff]:
        pass

    @abstractmethod
    async def list_active_staff(self, restaurant_id: str, role: StaffRole) -> List[Staff]:
        pass

    # Orders

    @abstractmethod
    async def list_open_orders(self, restaurant_id: str) -> List[Order]:
        """Orders whose status is not terminal."""
        pass

    @abstractmethod
    async def list_orders(self, restaurant_id: str) -> List[Order]:
        pass

    @abstractmethod
    async def create_order(self, draft: OrderDraft) -> Order:
        """Persist a fully assigned order in a single atomic write."""
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> Order:
        pass

    @abstractmethod
    async def update_order(
        self, order_id: str, patch: Dict[str, Any], expected_version: int
    ) -> Order:
        """Apply patch only if the stored version equals expected_version.

        Raises Conflict otherwise, leaving the record untouched.
        """
        pass

    def subscribe(
        self,
        callback: ChangeCallback,
        order_id: Optional[str] = None,
        restaurant_id: Optional[str] = None,
    ) -> Subscription:
        """Register for change events on one order or one restaurant."""
        return self.feed.subscribe(callback, order_id=order_id, restaurant_id=restaurant_id)

    async def init(self) -> None:
        """Prepare the backend (schema, connections). No-op by default."""
        pass

    async def close(self) -> None:
        pass


class InMemoryOrderStore(OrderStore):
    """Process-local store. Records are copied in and out, never aliased."""

    def __init__(self):
        super().__init__()
        self._lock = asyncio.Lock()
        self._restaurants: Dict[str, Restaurant] = {}
        self._staff: Dict[str, Staff] = {}
        self._orders: Dict[str, Order] = {}
        # Flip to False to simulate an unreachable backend
        self.available = True

    def _check_available(self) -> None:
        if not self.available:
            raise PersistenceUnavailable("In-memory order store is offline")

    async def add_restaurant(self, name: str, restaurant_id: Optional[str] = None) -> Restaurant:
        self._check_available()
        restaurant = Restaurant(id=restaurant_id or new_id(), name=name)
        async with self._lock:
            if restaurant.id in self._restaurants:
                raise ValidationError(f"Restaurant {restaurant.id} already exists")
            self._restaurants[restaurant.id] = restaurant
        return copy.deepcopy(restaurant)

    async def restaurant_exists(self, restaurant_id: str) -> bool:
        self._check_available()
        return restaurant_id in self._restaurants

    async def add_staff(
        self,
        restaurant_id: str,
        full_name: str,
        role: StaffRole,
        staff_id: Optional[str] = None,
    ) -> Staff:
        self._check_available()
        if restaurant_id not in self._restaurants:
            raise NotFound(f"Restaurant {restaurant_id} not found")
        staff = Staff(
            id=staff_id or new_id(),
            restaurant_id=restaurant_id,
            full_name=full_name,
            role=StaffRole(role),
        )
        async with self._lock:
            if staff.id in self._staff:
                raise ValidationError(f"Staff member {staff.id} already exists")
            self._staff[staff.id] = staff
        return copy.deepcopy(staff)

    async def get_staff(self, staff_id: str) -> Staff:
        self._check_available()
        staff = self._staff.get(staff_id)
        if staff is None:
            raise NotFound(f"Staff member {staff_id} not found")
        return copy.deepcopy(staff)

    async def deactivate_staff(self, staff_id: str) -> Staff:
        self._check_available()
        async with self._lock:
            staff = self._staff.get(staff_id)
            if staff is None:
                raise NotFound(f"Staff member {staff_id} not found")
            staff.is_active = False
            return copy.deepcopy(staff)

    async def list_staff(self, restaurant_id: str) -> List[Staff]:
        self._check_available()
        return [
            copy.deepcopy(s) for s in self._staff.values() if s.restaurant_id == restaurant_id
        ]

    async def list_active_staff(self, restaurant_id: str, role: StaffRole) -> List[Staff]:
        self._check_available()
        return [
            copy.deepcopy(s)
            for s in self._staff.values()
            if s.restaurant_id == restaurant_id and s.role == role and s.is_active
        ]

    async def list_open_orders(self, restaurant_id: str) -> List[Order]:
        self._check_available()
        return [
            copy.deepcopy(o)
            for o in self._orders.values()
            if o.restaurant_id == restaurant_id and o.is_open
        ]

    async def list_orders(self, restaurant_id: str) -> List[Order]:
        self._check_available()
        orders = [o for o in self._orders.values() if o.restaurant_id == restaurant_id]
        return [copy.deepcopy(o) for o in sorted(orders, key=lambda o: o.ordered_at)]

    async def create_order(self, draft: OrderDraft) -> Order:
        self._check_available()
        order = Order.from_draft(copy.deepcopy(draft))
        async with self._lock:
            self._orders[order.id] = order
            created = copy.deepcopy(order)
        await self.feed.publish(OrderChange(kind=ChangeKind.CREATED, order=created))
        return created

    async def get_order(self, order_id: str) -> Order:
        self._check_available()
        order = self._orders.get(order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return copy.deepcopy(order)

    async def update_order(
        self, order_id: str, patch: Dict[str, Any], expected_version: int
    ) -> Order:
        self._check_available()
        async with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                raise NotFound(f"Order {order_id} not found")
            if current.version != expected_version:
                raise Conflict(
                    f"Order {order_id} is at version {current.version}, "
                    f"expected {expected_version}",
                    {"order_id": order_id},
                )
            updated = apply_patch(current, patch)
            self._orders[order_id] = updated
            result = copy.deepcopy(updated)
        await self.feed.publish(OrderChange(kind=ChangeKind.UPDATED, order=result))
        return result
