"""Shared fixtures for order service tests."""

import pytest

from dineflow.core.context import SessionContext
from dineflow.core.entities import CartItem, CustomerInfo, StaffRole
from dineflow.core.orchestrator import OrderOrchestrator
from dineflow.services.notification import NotificationService
from dineflow.services.order_store import InMemoryOrderStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    """Retries happen immediately in tests."""
    monkeypatch.setattr("dineflow.core.retry.backoff_delay", lambda attempt: 0)


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def notifier():
    return NotificationService()


@pytest.fixture
def orchestrator(store, notifier):
    return OrderOrchestrator(store, notifier)


@pytest.fixture
def seed(store):
    """Returns a coroutine that creates a restaurant with cooks and waiters."""

    async def _seed(restaurant_id="r1", cooks=("c1", "c2"), waiters=("w1", "w2")):
        await store.add_restaurant("Test Bistro", restaurant_id=restaurant_id)
        for staff_id in cooks:
            await store.add_staff(restaurant_id, f"Cook {staff_id}", StaffRole.COOK, staff_id=staff_id)
        for staff_id in waiters:
            await store.add_staff(
                restaurant_id, f"Waiter {staff_id}", StaffRole.WAITER, staff_id=staff_id
            )
        return SessionContext(restaurant_id=restaurant_id)

    return _seed


@pytest.fixture
def customer():
    return CustomerInfo(name="Ada", phone="555-0100")


def make_cart(count=2, price=10.0, quantity=1):
    return [
        CartItem(dish_id=f"d{i}", name=f"Dish {i}", quantity=quantity, price=price)
        for i in range(1, count + 1)
    ]


@pytest.fixture
def cart():
    return make_cart
