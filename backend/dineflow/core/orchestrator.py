"""Order orchestrator: the operations exposed to checkout and staff handlers."""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from ..exceptions import NotFound, ValidationError
from ..services.notification import NotificationSink, order_status_message, order_status_tag
from ..services.order_store import ChangeCallback, OrderStore, Subscription
from .assignment import AssignmentPlanner
from .context import SessionContext
from .entities import AssignedTask, CartItem, CustomerInfo, Order, OrderDraft, StaffRole
from .retry import with_store_retry
from .state_machine import (
    CookStatus,
    ItemStateMachine,
    OrderStateMachine,
    OrderStatus,
    StatusTransition,
    WaiterStatus,
)
from .workload import StaffWorkloadIndex, WorkloadSnapshot, load_spread

logger = logging.getLogger(__name__)

E = TypeVar("E", CookStatus, WaiterStatus, OrderStatus)


class OrderOrchestrator:
    """
    Coordinates:
    - Order submission: workload lookup, assignment, atomic creation
    - Cook and waiter item progress
    - Explicit order status commands
    - Customer and staff notifications

    Every write is a read-modify-conditional-write against the order store
    and is retried on version conflicts, so concurrent staff actions on the
    same order never overwrite each other. Submissions for one restaurant
    are serialised so two checkouts never balance against the same stale
    workload snapshot.
    """

    def __init__(
        self,
        store: OrderStore,
        notifier: Optional[NotificationSink] = None,
        planner: Optional[AssignmentPlanner] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.planner = planner or AssignmentPlanner()
        self.workload_index = StaffWorkloadIndex(store)
        self._assignment_locks: Dict[str, asyncio.Lock] = {}

    # ==================== Submission ====================

    async def submit_order(
        self,
        ctx: SessionContext,
        customer: CustomerInfo,
        table_number: int,
        cart_items: Sequence[CartItem],
        notes: Optional[str] = None,
    ) -> Order:
        """Assign every cart line to a cook and a waiter and create the order."""
        self._validate_submission(customer, table_number, cart_items)

        lock = self._assignment_locks.setdefault(ctx.restaurant_id, asyncio.Lock())
        async with lock:
            order = await self._assign_and_create(
                ctx, customer, table_number, list(cart_items), notes
            )

        logger.info(
            "Order %s created for restaurant %s: %d items, total %.2f",
            order.id,
            order.restaurant_id,
            len(order.items),
            order.total,
        )
        await self._notify_new_tasks(order)
        return order

    @with_store_retry()
    async def _assign_and_create(
        self,
        ctx: SessionContext,
        customer: CustomerInfo,
        table_number: int,
        cart_items: List[CartItem],
        notes: Optional[str],
    ) -> Order:
        snapshot = await self.workload_index.compute_load(ctx.restaurant_id)
        plan = self.planner.plan(cart_items, snapshot.cook_load, snapshot.waiter_load)
        logger.debug(
            "Assignment for restaurant %s leaves cook spread %d, waiter spread %d",
            ctx.restaurant_id,
            load_spread(plan.cook_load),
            load_spread(plan.waiter_load),
        )

        draft = OrderDraft(
            restaurant_id=ctx.restaurant_id,
            customer=CustomerInfo(name=customer.name.strip(), phone=customer.phone or None),
            table_number=table_number,
            items=plan.items,
            total=sum(item.subtotal for item in plan.items),
            notes=notes or None,
        )
        return await self.store.create_order(draft)

    @staticmethod
    def _validate_submission(
        customer: CustomerInfo,
        table_number: int,
        cart_items: Sequence[CartItem],
    ) -> None:
        errors = []
        if not cart_items:
            errors.append("cart is empty")
        if not customer.name or not customer.name.strip():
            errors.append("customer name is required")
        if table_number is None or table_number < 1:
            errors.append("table number must be a positive integer")
        for idx, item in enumerate(cart_items):
            if not item.name or not item.dish_id:
                errors.append(f"item {idx} is missing its dish reference")
            if item.quantity < 1:
                errors.append(f"item {idx} quantity must be at least 1")
            if item.price < 0:
                errors.append(f"item {idx} price cannot be negative")
        if errors:
            raise ValidationError("Invalid order: " + "; ".join(errors), {"errors": errors})

    # ==================== Item progress ====================

    async def advance_cook_status(
        self,
        ctx: SessionContext,
        order_id: str,
        line_id: str,
        next_status: Union[CookStatus, str],
    ) -> Order:
        """Move one item's cook side a single step forward."""
        status = _parse_status(CookStatus, next_status)
        order, transition = await self._update_item(
            ctx, order_id, line_id, lambda m: m.advance_cook(status), f"cook_{status.value}"
        )
        await self._notify_status(order, transition)
        return order

    async def advance_waiter_status(
        self,
        ctx: SessionContext,
        order_id: str,
        line_id: str,
        next_status: Union[WaiterStatus, str],
    ) -> Order:
        """Move one item's waiter side a single step forward."""
        status = _parse_status(WaiterStatus, next_status)
        order, transition = await self._update_item(
            ctx, order_id, line_id, lambda m: m.advance_waiter(status), f"waiter_{status.value}"
        )
        await self._notify_status(order, transition)
        return order

    @with_store_retry()
    async def _update_item(
        self,
        ctx: SessionContext,
        order_id: str,
        line_id: str,
        action: Callable[[ItemStateMachine], None],
        trigger: str,
    ) -> Tuple[Order, Optional[StatusTransition]]:
        order = await self._load(ctx, order_id)
        item = order.find_item(line_id)
        if item is None:
            raise NotFound(f"Line item {line_id} not found in order {order_id}")

        action(ItemStateMachine(item))
        transition = OrderStateMachine(order).promote(
            trigger=trigger, metadata={"line_id": line_id, "actor": ctx.actor}
        )

        patch = {"items": order.items}
        if transition is not None:
            patch["status"] = order.status
            patch["history"] = order.history

        updated = await self.store.update_order(order_id, patch, expected_version=order.version)
        logger.info(
            "Order %s item %s: %s by %s (order status %s)",
            order_id,
            line_id,
            trigger,
            ctx.actor,
            updated.status.value,
        )
        return updated, transition

    # ==================== Order status ====================

    async def set_order_status(
        self,
        ctx: SessionContext,
        order_id: str,
        next_status: Union[OrderStatus, str],
    ) -> Order:
        """Explicit coarse status command from a manager, cook or waiter."""
        status = _parse_status(OrderStatus, next_status)
        order, transition = await self._update_status(ctx, order_id, status)
        await self._notify_status(order, transition)
        return order

    @with_store_retry()
    async def _update_status(
        self,
        ctx: SessionContext,
        order_id: str,
        status: OrderStatus,
    ) -> Tuple[Order, StatusTransition]:
        order = await self._load(ctx, order_id)
        transition = OrderStateMachine(order).transition(
            status, trigger="staff_command", metadata={"actor": ctx.actor}
        )
        updated = await self.store.update_order(
            order_id,
            {"status": order.status, "history": order.history},
            expected_version=order.version,
        )
        logger.info(
            "Order %s status %s -> %s by %s",
            order_id,
            transition.from_status.value,
            transition.to_status.value,
            ctx.actor,
        )
        return updated, transition

    async def reconcile_order(self, ctx: SessionContext, order_id: str) -> Order:
        """Promote an order to whatever its items imply, if that is further along."""
        order, transition = await self._promote(ctx, order_id)
        await self._notify_status(order, transition)
        return order

    @with_store_retry()
    async def _promote(
        self, ctx: SessionContext, order_id: str
    ) -> Tuple[Order, Optional[StatusTransition]]:
        order = await self._load(ctx, order_id)
        transition = OrderStateMachine(order).promote(trigger="reconciler")
        if transition is None:
            return order, None
        updated = await self.store.update_order(
            order_id,
            {"status": order.status, "history": order.history},
            expected_version=order.version,
        )
        logger.info(
            "Order %s reconciled %s -> %s",
            order_id,
            transition.from_status.value,
            transition.to_status.value,
        )
        return updated, transition

    # ==================== Queries ====================

    async def get_order(self, ctx: SessionContext, order_id: str) -> Order:
        return await self._load(ctx, order_id)

    async def list_orders(
        self, ctx: SessionContext, status: Optional[OrderStatus] = None
    ) -> List[Order]:
        orders = await self.store.list_orders(ctx.restaurant_id)
        if status is not None:
            orders = [o for o in orders if o.status == status]
        return orders

    async def workload(self, ctx: SessionContext) -> WorkloadSnapshot:
        return await self.workload_index.compute_load(ctx.restaurant_id)

    async def list_assigned_tasks(
        self, ctx: SessionContext, include_finished: bool = False
    ) -> List[AssignedTask]:
        """Line items assigned to the staff member in the session context."""
        if ctx.staff_id is None:
            raise ValidationError("A staff member is required to list assigned tasks")

        staff = await self.store.get_staff(ctx.staff_id)
        if staff.restaurant_id != ctx.restaurant_id:
            raise NotFound(f"Staff member {ctx.staff_id} not found")

        tasks = []
        for order in await self.store.list_orders(ctx.restaurant_id):
            for item in order.items:
                if staff.role == StaffRole.COOK:
                    if item.assigned_cook_id != staff.id:
                        continue
                    finished = item.cook_status == CookStatus.COMPLETED
                else:
                    if item.assigned_waiter_id != staff.id:
                        continue
                    finished = ItemStateMachine.is_done(item)
                if finished and not include_finished:
                    continue
                tasks.append(
                    AssignedTask(
                        order_id=order.id,
                        line_id=item.line_id,
                        dish_name=item.name,
                        quantity=item.quantity,
                        table_number=order.table_number,
                        customer_name=order.customer_name,
                        order_status=order.status,
                        cook_status=item.cook_status,
                        waiter_status=item.waiter_status,
                    )
                )
        return tasks

    async def subscribe_order(
        self, ctx: SessionContext, order_id: str, callback: ChangeCallback
    ) -> Subscription:
        """Watch one order; the caller must unsubscribe on teardown."""
        await self._load(ctx, order_id)
        return self.store.subscribe(callback, order_id=order_id)

    async def _load(self, ctx: SessionContext, order_id: str) -> Order:
        order = await self.store.get_order(order_id)
        if order.restaurant_id != ctx.restaurant_id:
            raise NotFound(f"Order {order_id} not found")
        return order

    # ==================== Notifications ====================

    async def _notify_status(
        self, order: Order, transition: Optional[StatusTransition]
    ) -> None:
        if transition is None:
            return
        await self._safe_notify(
            title="Order Update",
            body=order_status_message(order.status, order.id, order.table_number),
            tag=order_status_tag(order.id, order.status),
            order_id=order.id,
        )

    async def _notify_new_tasks(self, order: Order) -> None:
        cook_counts: Dict[str, int] = {}
        waiter_counts: Dict[str, int] = {}
        for item in order.items:
            if item.assigned_cook_id:
                cook_counts[item.assigned_cook_id] = cook_counts.get(item.assigned_cook_id, 0) + 1
            if item.assigned_waiter_id:
                waiter_counts[item.assigned_waiter_id] = (
                    waiter_counts.get(item.assigned_waiter_id, 0) + 1
                )

        for staff_id, count in cook_counts.items():
            await self._safe_notify(
                title="New dish to prepare",
                body=f"{count} dish(es) for table {order.table_number}",
                tag=f"cook-task-{order.id}-{staff_id}",
                order_id=order.id,
                target_staff_ids=[staff_id],
            )
        for staff_id, count in waiter_counts.items():
            await self._safe_notify(
                title="New table to serve",
                body=f"{count} dish(es) for table {order.table_number}",
                tag=f"waiter-task-{order.id}-{staff_id}",
                order_id=order.id,
                target_staff_ids=[staff_id],
            )

    async def _safe_notify(self, **kwargs) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(**kwargs)
        except Exception:
            logger.warning(
                "Notification %s could not be delivered", kwargs.get("tag"), exc_info=True
            )


def _parse_status(enum_cls: Type[E], value: Union[E, str]) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Unknown {enum_cls.__name__} value: {value!r}",
            {"allowed": [s.value for s in enum_cls]},
        )
