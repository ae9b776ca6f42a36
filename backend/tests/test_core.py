"""Tests for the assignment planner, workload index and state machines."""

import pytest

from dineflow.config import get_settings
from dineflow.core.assignment import AssignmentPlanner
from dineflow.core.entities import CartItem, LineItem, Order, Staff, StaffRole
from dineflow.core.state_machine import (
    CookStatus,
    ItemStateMachine,
    ItemStatus,
    OrderStateMachine,
    OrderStatus,
    WaiterStatus,
)
from dineflow.core.retry import with_store_retry
from dineflow.core.workload import StaffWorkloadIndex, load_spread
from dineflow.exceptions import Conflict, InvalidTransition, NotFound, PersistenceUnavailable


def _items(count):
    return [CartItem(dish_id=f"d{i}", name=f"Dish {i}", quantity=1, price=5.0) for i in range(count)]


def _line(line_id="l1", cook=CookStatus.PENDING, waiter=WaiterStatus.PENDING, cook_id="c1", waiter_id="w1"):
    return LineItem(
        line_id=line_id,
        dish_id="d1",
        name="Soup",
        quantity=1,
        price=5.0,
        assigned_cook_id=cook_id,
        assigned_waiter_id=waiter_id,
        cook_status=cook,
        waiter_status=waiter,
    )


def _order(items, status=OrderStatus.PENDING):
    return Order(
        id="o1",
        restaurant_id="r1",
        customer_name="Ada",
        table_number=3,
        items=items,
        total=sum(i.subtotal for i in items),
        status=status,
    )


class TestAssignmentPlanner:
    """Tests for least-busy assignment."""

    def setup_method(self):
        self.planner = AssignmentPlanner()

    def test_even_split_from_zero(self):
        """Six items across three idle cooks land two each."""
        plan = self.planner.plan(_items(6), {"c1": 0, "c2": 0, "c3": 0}, {"w1": 0, "w2": 0})

        assert plan.assigned_per_cook() == {"c1": 2, "c2": 2, "c3": 2}
        assert plan.assigned_per_waiter() == {"w1": 3, "w2": 3}
        assert load_spread(plan.cook_load) == 0

    def test_least_busy_first(self):
        """Items fill the idle cook until loads meet."""
        plan = self.planner.plan(_items(3), {"c1": 3, "c2": 0}, {"w1": 0})

        assert [i.assigned_cook_id for i in plan.items] == ["c2", "c2", "c2"]
        assert plan.cook_load == {"c1": 3, "c2": 3}

    def test_tie_goes_to_enumeration_order(self):
        """C1 at 0 and C2 at 1: first item to C1, then the tie also goes to C1."""
        plan = self.planner.plan(_items(2), {"c1": 0, "c2": 1}, {"w1": 0})

        assert [i.assigned_cook_id for i in plan.items] == ["c1", "c1"]
        assert plan.cook_load == {"c1": 2, "c2": 1}

    def test_spread_stays_within_one(self):
        plan = self.planner.plan(_items(7), {"a": 1, "b": 0, "c": 1}, {"w1": 0, "w2": 1})

        assert load_spread(plan.cook_load) <= 1
        assert load_spread(plan.waiter_load) <= 1

    def test_deterministic(self):
        """Same items and loads give the same assignment."""
        loads = ({"c1": 2, "c2": 1, "c3": 1}, {"w1": 0, "w2": 0})
        first = self.planner.plan(_items(5), *loads)
        second = self.planner.plan(_items(5), *loads)

        assert [i.assigned_cook_id for i in first.items] == [i.assigned_cook_id for i in second.items]
        assert [i.assigned_waiter_id for i in first.items] == [
            i.assigned_waiter_id for i in second.items
        ]

    def test_no_staff_leaves_unassigned(self):
        """A role without active staff yields None, not an error."""
        items = self.planner.assign(_items(2), {}, {"w1": 0})

        assert all(i.assigned_cook_id is None for i in items)
        assert all(i.assigned_waiter_id == "w1" for i in items)

    def test_quantity_does_not_weigh(self):
        """Load counts line items, not portions."""
        cart = [CartItem(dish_id="d1", name="Wings", quantity=12, price=1.0)] + _items(1)
        plan = self.planner.plan(cart, {"c1": 0, "c2": 0}, {"w1": 0})

        assert plan.assigned_per_cook() == {"c1": 1, "c2": 1}

    def test_does_not_mutate_input(self):
        cook_load = {"c1": 0, "c2": 0}
        self.planner.plan(_items(4), cook_load, {})
        assert cook_load == {"c1": 0, "c2": 0}

    def test_items_start_pending_with_unique_ids(self):
        items = self.planner.assign(_items(3), {"c1": 0}, {"w1": 0})

        assert len({i.line_id for i in items}) == 3
        assert all(i.cook_status == CookStatus.PENDING for i in items)
        assert all(i.waiter_status == WaiterStatus.PENDING for i in items)


class TestStaffWorkloadIndex:
    """Tests for workload computation."""

    def _staff(self, staff_id, role, active=True):
        return Staff(id=staff_id, restaurant_id="r1", full_name=staff_id, role=role, is_active=active)

    def test_counts_open_items(self):
        cooks = [self._staff("c2", StaffRole.COOK), self._staff("c1", StaffRole.COOK)]
        waiters = [self._staff("w1", StaffRole.WAITER)]
        orders = [
            _order([_line("a", cook_id="c1"), _line("b", cook_id="c1"), _line("c", cook_id="c2")]),
        ]

        snapshot = StaffWorkloadIndex.build(cooks, waiters, orders)

        assert snapshot.cook_load == {"c1": 2, "c2": 1}
        assert snapshot.waiter_load == {"w1": 3}
        # Enumeration order is by id regardless of input order
        assert list(snapshot.cook_load) == ["c1", "c2"]

    def test_completed_orders_ignored(self):
        cooks = [self._staff("c1", StaffRole.COOK)]
        done = _order([_line()], status=OrderStatus.COMPLETED)

        snapshot = StaffWorkloadIndex.build(cooks, [], [done])

        assert snapshot.cook_load == {"c1": 0}

    def test_inactive_staff_excluded(self):
        cooks = [self._staff("c1", StaffRole.COOK), self._staff("c2", StaffRole.COOK, active=False)]
        orders = [_order([_line(cook_id="c2")])]

        snapshot = StaffWorkloadIndex.build(cooks, [], orders)

        assert snapshot.cook_load == {"c1": 0}

    @pytest.mark.anyio
    async def test_unknown_restaurant(self, store):
        with pytest.raises(NotFound):
            await StaffWorkloadIndex(store).compute_load("nowhere")

    @pytest.mark.anyio
    async def test_compute_load_from_store(self, store, seed, orchestrator, customer, cart):
        ctx = await seed()
        await orchestrator.submit_order(ctx, customer, 4, cart(3))

        snapshot = await StaffWorkloadIndex(store).compute_load("r1")

        assert sum(snapshot.cook_load.values()) == 3
        assert sum(snapshot.waiter_load.values()) == 3
        assert snapshot.to_dict()["cook_spread"] == 1


class TestItemStateMachine:
    """Tests for per-item cook and waiter progress."""

    def test_cook_steps_forward(self):
        item = _line()
        sm = ItemStateMachine(item)

        sm.advance_cook(CookStatus.PREPARING)
        sm.advance_cook(CookStatus.COMPLETED)

        assert item.cook_status == CookStatus.COMPLETED

    def test_cook_cannot_skip(self):
        item = _line()
        with pytest.raises(InvalidTransition):
            ItemStateMachine(item).advance_cook(CookStatus.COMPLETED)
        assert item.cook_status == CookStatus.PENDING

    def test_cook_cannot_regress(self):
        item = _line(cook=CookStatus.COMPLETED)
        with pytest.raises(InvalidTransition):
            ItemStateMachine(item).advance_cook(CookStatus.PREPARING)

    def test_waiter_independent_of_cook(self):
        """A waiter may accept and serve before the cook finishes."""
        item = _line()
        sm = ItemStateMachine(item)

        sm.advance_waiter(WaiterStatus.ACCEPTED)
        sm.advance_waiter(WaiterStatus.SERVED)

        assert item.waiter_status == WaiterStatus.SERVED
        assert sm.status == ItemStatus.IN_PROGRESS

    def test_repeat_is_rejected(self):
        item = _line(waiter=WaiterStatus.ACCEPTED)
        with pytest.raises(InvalidTransition) as exc_info:
            ItemStateMachine(item).advance_waiter(WaiterStatus.ACCEPTED)
        assert exc_info.value.detail["side"] == "waiter"

    def test_combined_status(self):
        assert _line().status == ItemStatus.PENDING
        assert _line(cook=CookStatus.PREPARING).status == ItemStatus.IN_PROGRESS
        assert _line(cook=CookStatus.COMPLETED, waiter=WaiterStatus.SERVED).status == ItemStatus.DONE

    def test_legacy_cook_value(self):
        assert CookStatus("complete") == CookStatus.COMPLETED


class TestOrderStateMachine:
    """Tests for order lifecycle."""

    def test_explicit_forward_transition(self):
        order = _order([_line()])
        transition = OrderStateMachine(order).transition(OrderStatus.PREPARING, "test")

        assert order.status == OrderStatus.PREPARING
        assert transition.from_status == OrderStatus.PENDING
        assert len(order.history) == 1

    def test_backward_transition_rejected(self):
        order = _order([_line()], status=OrderStatus.SERVING)
        with pytest.raises(InvalidTransition):
            OrderStateMachine(order).transition(OrderStatus.PREPARING)
        assert order.status == OrderStatus.SERVING

    def test_completed_requires_all_items_done(self):
        order = _order(
            [_line("a", CookStatus.COMPLETED, WaiterStatus.SERVED), _line("b", CookStatus.COMPLETED)],
            status=OrderStatus.READY,
        )
        with pytest.raises(InvalidTransition):
            OrderStateMachine(order).transition(OrderStatus.COMPLETED)

        order.items[1].waiter_status = WaiterStatus.SERVED
        OrderStateMachine(order).transition(OrderStatus.COMPLETED)
        assert order.status == OrderStatus.COMPLETED

    def test_completed_is_terminal(self):
        order = _order([_line(cook=CookStatus.COMPLETED, waiter=WaiterStatus.SERVED)], OrderStatus.COMPLETED)
        sm = OrderStateMachine(order)

        for status in OrderStatus:
            assert not sm.can_transition(status)

    def test_food_prepared_alias(self):
        assert OrderStatus("food_prepared") == OrderStatus.READY

    def test_derive_from_items(self):
        order = _order([_line("a"), _line("b")])
        sm = OrderStateMachine(order)
        assert sm.derive_from_items() == OrderStatus.PENDING

        order.items[0].cook_status = CookStatus.PREPARING
        assert sm.derive_from_items() == OrderStatus.PREPARING

        for item in order.items:
            item.cook_status = CookStatus.COMPLETED
        assert sm.derive_from_items() == OrderStatus.READY

        order.items[0].waiter_status = WaiterStatus.ACCEPTED
        assert sm.derive_from_items() == OrderStatus.SERVING

        for item in order.items:
            item.waiter_status = WaiterStatus.SERVED
        assert sm.derive_from_items() == OrderStatus.COMPLETED

    def test_all_served_before_cooked(self):
        order = _order([_line(waiter=WaiterStatus.SERVED)])
        assert OrderStateMachine(order).derive_from_items() == OrderStatus.SERVED

    def test_promote_never_regresses(self):
        order = _order([_line(cook=CookStatus.PREPARING)], status=OrderStatus.SERVING)

        assert OrderStateMachine(order).promote() is None
        assert order.status == OrderStatus.SERVING
        assert order.history == []


class TestWithStoreRetry:
    """Attempt limits count every call, the first one included."""

    @staticmethod
    def _failing(error, failures):
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) <= failures:
                raise error("busy")
            return len(calls)

        return operation, calls

    @pytest.mark.anyio
    async def test_recovers_after_conflicts(self):
        operation, calls = self._failing(Conflict, failures=2)

        assert await with_store_retry()(operation)() == 3
        assert len(calls) == 3

    @pytest.mark.anyio
    async def test_default_conflict_attempts(self):
        operation, calls = self._failing(Conflict, failures=100)

        with pytest.raises(Conflict):
            await with_store_retry()(operation)()

        assert len(calls) == get_settings().conflict_max_attempts

    @pytest.mark.anyio
    async def test_single_attempt_never_retries(self):
        operation, calls = self._failing(Conflict, failures=100)

        with pytest.raises(Conflict):
            await with_store_retry(conflict_attempts=1)(operation)()

        assert len(calls) == 1

    @pytest.mark.anyio
    async def test_zero_is_not_the_default(self):
        operation, calls = self._failing(PersistenceUnavailable, failures=100)

        with pytest.raises(PersistenceUnavailable):
            await with_store_retry(persistence_attempts=0)(operation)()

        assert len(calls) == 1

    @pytest.mark.anyio
    async def test_other_errors_not_retried(self):
        operation, calls = self._failing(NotFound, failures=100)

        with pytest.raises(NotFound):
            await with_store_retry()(operation)()

        assert len(calls) == 1
