"""Watches order changes and promotes orders whose items have moved ahead."""

import logging
from typing import Optional, Set

from ..exceptions import DineflowError
from ..services.order_store import OrderChange, OrderStore, Subscription
from .context import SessionContext
from .entities import Order
from .orchestrator import OrderOrchestrator
from .state_machine import OrderStateMachine

logger = logging.getLogger(__name__)


class StatusReconciler:
    """
    Subscribes to the order change feed, for one restaurant or for all.

    An order whose line items imply a later status than the stored one (for
    example every item done while the order still reads "served") is
    promoted through the orchestrator, so the write goes through the same
    versioned retry path as any staff action.
    """

    def __init__(
        self,
        orchestrator: OrderOrchestrator,
        store: OrderStore,
        restaurant_id: Optional[str] = None,
    ):
        self.orchestrator = orchestrator
        self.store = store
        self.restaurant_id = restaurant_id
        self._subscription: Optional[Subscription] = None
        self._in_flight: Set[str] = set()

    @property
    def running(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start(self) -> None:
        if self.running:
            return
        self._subscription = self.store.subscribe(
            self._on_change, restaurant_id=self.restaurant_id
        )
        logger.info("Status reconciler watching %s", self.restaurant_id or "all restaurants")

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
            logger.info("Status reconciler stopped")

    @staticmethod
    def is_behind(order: Order) -> bool:
        """True when the items imply a later status than the stored one."""
        if order.status.is_terminal:
            return False
        derived = OrderStateMachine(order).derive_from_items()
        return derived.rank > order.status.rank

    async def _on_change(self, change: OrderChange) -> None:
        order = change.order
        if order.id in self._in_flight or not self.is_behind(order):
            return

        self._in_flight.add(order.id)
        try:
            await self.orchestrator.reconcile_order(
                SessionContext(restaurant_id=order.restaurant_id), order.id
            )
        except DineflowError as exc:
            logger.warning("Could not reconcile order %s: %s", order.id, exc.message)
        finally:
            self._in_flight.discard(order.id)

    async def sweep(self, restaurant_id: str) -> int:
        """Reconcile every open order of a restaurant once; returns how many moved."""
        ctx = SessionContext(restaurant_id=restaurant_id)
        promoted = 0
        for order in await self.store.list_open_orders(restaurant_id):
            if not self.is_behind(order):
                continue
            updated = await self.orchestrator.reconcile_order(ctx, order.id)
            if updated.status != order.status:
                promoted += 1
        return promoted
