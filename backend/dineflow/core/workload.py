"""Per-staff open task counts derived from the open orders of a restaurant."""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List

from ..exceptions import NotFound
from .entities import Order, Staff, StaffRole

if TYPE_CHECKING:
    from ..services.order_store import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class WorkloadSnapshot:
    """Open line item count per active cook and per active waiter.

    Mapping order is the canonical enumeration order used for tie-breaks.
    """

    cook_load: Dict[str, int] = field(default_factory=dict)
    waiter_load: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "cook_load": dict(self.cook_load),
            "waiter_load": dict(self.waiter_load),
            "cook_spread": load_spread(self.cook_load),
            "waiter_spread": load_spread(self.waiter_load),
        }


def load_spread(load: Dict[str, int]) -> int:
    """Difference between the busiest and the least busy staff member."""
    if not load:
        return 0
    return max(load.values()) - min(load.values())


class StaffWorkloadIndex:
    """
    Computes current task counts per active cook and waiter.

    Every line item of a non-terminal order counts once toward its assigned
    cook and once toward its assigned waiter. Assignments that point at
    staff who are no longer active are ignored.
    """

    def __init__(self, store: "OrderStore"):
        self.store = store

    async def compute_load(self, restaurant_id: str) -> WorkloadSnapshot:
        if not await self.store.restaurant_exists(restaurant_id):
            raise NotFound(f"Restaurant {restaurant_id} not found")

        cooks = await self.store.list_active_staff(restaurant_id, StaffRole.COOK)
        waiters = await self.store.list_active_staff(restaurant_id, StaffRole.WAITER)
        open_orders = await self.store.list_open_orders(restaurant_id)

        snapshot = self.build(cooks, waiters, open_orders)
        logger.debug(
            "Workload for %s: %d cooks (spread %d), %d waiters (spread %d), %d open orders",
            restaurant_id,
            len(snapshot.cook_load),
            load_spread(snapshot.cook_load),
            len(snapshot.waiter_load),
            load_spread(snapshot.waiter_load),
            len(open_orders),
        )
        return snapshot

    @staticmethod
    def build(
        cooks: Iterable[Staff],
        waiters: Iterable[Staff],
        open_orders: Iterable[Order],
    ) -> WorkloadSnapshot:
        """Count open items per staff member; pure, no store access."""
        cook_load = _initial_load(cooks)
        waiter_load = _initial_load(waiters)

        for order in open_orders:
            if not order.is_open:
                continue
            for item in order.items:
                if item.assigned_cook_id in cook_load:
                    cook_load[item.assigned_cook_id] += 1
                if item.assigned_waiter_id in waiter_load:
                    waiter_load[item.assigned_waiter_id] += 1

        return WorkloadSnapshot(cook_load=cook_load, waiter_load=waiter_load)


def _initial_load(staff: Iterable[Staff]) -> Dict[str, int]:
    # Store fetch order is not guaranteed, so enumerate by id
    active: List[Staff] = sorted((s for s in staff if s.is_active), key=lambda s: s.id)
    return {s.id: 0 for s in active}
