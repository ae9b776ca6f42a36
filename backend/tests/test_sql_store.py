"""Tests for the SQLAlchemy order store against a temporary SQLite file."""

import asyncio
from contextlib import asynccontextmanager

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dineflow.core.assignment import AssignmentPlanner
from dineflow.core.context import SessionContext
from dineflow.core.entities import CartItem, CustomerInfo, OrderDraft, StaffRole
from dineflow.core.orchestrator import OrderOrchestrator
from dineflow.core.state_machine import CookStatus, OrderStatus, WaiterStatus
from dineflow.exceptions import Conflict, NotFound, PersistenceUnavailable, ValidationError
from dineflow.models import OrderRecord
from dineflow.services.sql_store import SqlOrderStore


class RacingSqlStore(SqlOrderStore):
    """Another writer commits between update_order reading the row and writing it."""

    def __init__(self, database_url):
        super().__init__(database_url)
        self.races = 0
        self.conflicts = 0
        self._updating = False
        store = self

        class RacingSession(AsyncSession):
            async def get(self, entity, ident, **kwargs):
                record = await super().get(entity, ident, **kwargs)
                if entity is OrderRecord and store._updating and store.races > 0:
                    store.races -= 1
                    await store.bump_version(ident)
                return record

        self._sessionmaker = async_sessionmaker(
            bind=self.engine, class_=RacingSession, expire_on_commit=False
        )

    async def bump_version(self, order_id):
        async with self.engine.begin() as conn:
            await conn.execute(
                update(OrderRecord)
                .where(OrderRecord.id == order_id)
                .values(version_id=OrderRecord.version_id + 1)
            )

    async def update_order(self, order_id, patch, expected_version):
        self._updating = True
        try:
            return await super().update_order(order_id, patch, expected_version)
        except Conflict:
            self.conflicts += 1
            raise
        finally:
            self._updating = False


@asynccontextmanager
async def open_store(tmp_path, store_class=SqlOrderStore):
    store = store_class(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await store.init()
    try:
        yield store
    finally:
        await store.close()


async def _seed(store):
    await store.add_restaurant("Test Bistro", restaurant_id="r1")
    await store.add_staff("r1", "Cook B", StaffRole.COOK, staff_id="c2")
    await store.add_staff("r1", "Cook A", StaffRole.COOK, staff_id="c1")
    await store.add_staff("r1", "Waiter", StaffRole.WAITER, staff_id="w1")


def _draft(items=2):
    cart = [CartItem(dish_id=f"d{i}", name=f"Dish {i}", quantity=1, price=8.0) for i in range(items)]
    assigned = AssignmentPlanner().assign(cart, {"c1": 0, "c2": 0}, {"w1": 0})
    return OrderDraft(
        restaurant_id="r1",
        customer=CustomerInfo(name="Ada"),
        table_number=2,
        items=assigned,
        total=sum(i.subtotal for i in assigned),
    )


class TestSqlStaff:
    @pytest.mark.anyio
    async def test_active_staff_sorted_by_id(self, tmp_path):
        async with open_store(tmp_path) as store:
            await _seed(store)
            await store.deactivate_staff("c2")

            cooks = await store.list_active_staff("r1", StaffRole.COOK)
            everyone = await store.list_staff("r1")

        assert [s.id for s in cooks] == ["c1"]
        assert [s.id for s in everyone] == ["c1", "c2", "w1"]

    @pytest.mark.anyio
    async def test_duplicate_ids_rejected(self, tmp_path):
        async with open_store(tmp_path) as store:
            await _seed(store)
            with pytest.raises(ValidationError):
                await store.add_restaurant("Again", restaurant_id="r1")
            with pytest.raises(ValidationError):
                await store.add_staff("r1", "Twin", StaffRole.COOK, staff_id="c1")

    @pytest.mark.anyio
    async def test_staff_needs_restaurant(self, tmp_path):
        async with open_store(tmp_path) as store:
            with pytest.raises(NotFound):
                await store.add_staff("nowhere", "Cook", StaffRole.COOK)
            assert not await store.restaurant_exists("nowhere")


class TestSqlOrders:
    @pytest.mark.anyio
    async def test_create_and_read_back(self, tmp_path):
        async with open_store(tmp_path) as store:
            await _seed(store)
            created = await store.create_order(_draft())
            loaded = await store.get_order(created.id)

        assert loaded.version == 1
        assert loaded.status == OrderStatus.PENDING
        assert loaded.total == pytest.approx(16.0)
        assert [i.line_id for i in loaded.items] == [i.line_id for i in created.items]
        assert loaded.items[0].assigned_cook_id == "c1"
        assert loaded.ordered_at.tzinfo is not None

    @pytest.mark.anyio
    async def test_conditional_update(self, tmp_path):
        async with open_store(tmp_path) as store:
            await _seed(store)
            order = await store.create_order(_draft())
            items = order.items
            items[0].cook_status = CookStatus.PREPARING

            updated = await store.update_order(order.id, {"items": items}, expected_version=1)
            assert updated.version == 2

            items[1].waiter_status = WaiterStatus.ACCEPTED
            with pytest.raises(Conflict):
                await store.update_order(order.id, {"items": items}, expected_version=1)

            stored = await store.get_order(order.id)

        assert stored.version == 2
        assert stored.items[0].cook_status == CookStatus.PREPARING
        assert stored.items[1].waiter_status == WaiterStatus.PENDING

    @pytest.mark.anyio
    async def test_write_after_concurrent_commit_conflicts(self, tmp_path):
        async with open_store(tmp_path, RacingSqlStore) as store:
            await _seed(store)
            order = await store.create_order(_draft())
            store.races = 1

            with pytest.raises(Conflict, match="changed concurrently"):
                await store.update_order(order.id, {"status": OrderStatus.PREPARING}, 1)

            stored = await store.get_order(order.id)

        assert store.conflicts == 1
        assert stored.version == 2
        assert stored.status == OrderStatus.PENDING

    @pytest.mark.anyio
    async def test_unknown_order(self, tmp_path):
        async with open_store(tmp_path) as store:
            with pytest.raises(NotFound):
                await store.get_order("missing")
            with pytest.raises(NotFound):
                await store.update_order("missing", {"status": OrderStatus.PREPARING}, 1)

    @pytest.mark.anyio
    async def test_open_orders_exclude_completed(self, tmp_path):
        async with open_store(tmp_path) as store:
            await _seed(store)
            first = await store.create_order(_draft(1))
            second = await store.create_order(_draft(1))
            await store.update_order(first.id, {"status": OrderStatus.COMPLETED}, 1)

            open_ids = [o.id for o in await store.list_open_orders("r1")]
            all_ids = [o.id for o in await store.list_orders("r1")]

        assert open_ids == [second.id]
        assert set(all_ids) == {first.id, second.id}

    @pytest.mark.anyio
    async def test_changes_published(self, tmp_path):
        seen = []
        async with open_store(tmp_path) as store:
            await _seed(store)
            store.subscribe(seen.append, restaurant_id="r1")
            order = await store.create_order(_draft(1))
            await store.update_order(order.id, {"status": OrderStatus.PREPARING}, 1)

        assert [c.kind.value for c in seen] == ["created", "updated"]
        assert seen[-1].order.status == OrderStatus.PREPARING

    @pytest.mark.anyio
    async def test_unreachable_database(self, tmp_path):
        store = SqlOrderStore(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'orders.db'}")
        try:
            with pytest.raises(PersistenceUnavailable):
                await store.init()
        finally:
            await store.close()


class TestSqlOrchestration:
    @pytest.mark.anyio
    async def test_full_flow(self, tmp_path):
        """Submit, progress every item and complete through the SQL store."""
        async with open_store(tmp_path) as store:
            await _seed(store)
            orchestrator = OrderOrchestrator(store)
            ctx = SessionContext("r1")
            order = await orchestrator.submit_order(
                ctx,
                CustomerInfo(name="Ada"),
                4,
                [CartItem(dish_id="d1", name="Pho", quantity=2, price=9.0)],
            )
            line_id = order.items[0].line_id

            await orchestrator.advance_cook_status(ctx, order.id, line_id, CookStatus.PREPARING)
            await orchestrator.advance_cook_status(ctx, order.id, line_id, CookStatus.COMPLETED)
            ready = await orchestrator.get_order(ctx, order.id)
            await orchestrator.advance_waiter_status(ctx, order.id, line_id, WaiterStatus.ACCEPTED)
            done = await orchestrator.advance_waiter_status(ctx, order.id, line_id, WaiterStatus.SERVED)

        assert ready.status == OrderStatus.READY
        assert done.status == OrderStatus.COMPLETED
        assert done.version == 5
        assert [t.to_status for t in done.history] == [
            OrderStatus.PREPARING,
            OrderStatus.READY,
            OrderStatus.SERVING,
            OrderStatus.COMPLETED,
        ]

    @pytest.mark.anyio
    async def test_concurrent_commit_is_retried(self, tmp_path):
        async with open_store(tmp_path, RacingSqlStore) as store:
            await _seed(store)
            orchestrator = OrderOrchestrator(store)
            ctx = SessionContext("r1")
            order = await orchestrator.submit_order(
                ctx,
                CustomerInfo(name="Ada"),
                3,
                [CartItem(dish_id="d1", name="Pho", quantity=1, price=9.0)],
            )
            line_id = order.items[0].line_id
            store.races = 1

            updated = await orchestrator.advance_cook_status(
                ctx, order.id, line_id, CookStatus.PREPARING
            )
            stored = await store.get_order(order.id)

        assert store.conflicts == 1
        assert updated.version == 3
        assert stored.find_item(line_id).cook_status == CookStatus.PREPARING
        assert stored.status == OrderStatus.PREPARING

    @pytest.mark.anyio
    async def test_concurrent_staff_updates_all_persist(self, tmp_path):
        """Cooks and waiters advancing different items of one order at once."""
        async with open_store(tmp_path) as store:
            await _seed(store)
            orchestrator = OrderOrchestrator(store)
            ctx = SessionContext("r1")
            cart = [
                CartItem(dish_id=f"d{i}", name=f"Dish {i}", quantity=1, price=5.0) for i in range(4)
            ]
            order = await orchestrator.submit_order(ctx, CustomerInfo(name="Ada"), 6, cart)
            lines = [item.line_id for item in order.items]

            await asyncio.gather(
                orchestrator.advance_cook_status(ctx, order.id, lines[0], CookStatus.PREPARING),
                orchestrator.advance_cook_status(ctx, order.id, lines[1], CookStatus.PREPARING),
                orchestrator.advance_waiter_status(ctx, order.id, lines[2], WaiterStatus.ACCEPTED),
                orchestrator.advance_waiter_status(ctx, order.id, lines[3], WaiterStatus.ACCEPTED),
            )
            stored = await store.get_order(order.id)

        assert stored.version == 5
        assert stored.find_item(lines[0]).cook_status == CookStatus.PREPARING
        assert stored.find_item(lines[1]).cook_status == CookStatus.PREPARING
        assert stored.find_item(lines[2]).waiter_status == WaiterStatus.ACCEPTED
        assert stored.find_item(lines[3]).waiter_status == WaiterStatus.ACCEPTED
        assert stored.status == OrderStatus.SERVING
