"""
SQLAlchemy-backed order store.

Order updates use optimistic locking on version_id:
  - READ:  fetch the row and check its version against the caller's
  - WRITE: UPDATE ... WHERE id = :id AND version_id = :expected
  - zero rows updated means another writer got there first -> Conflict

The caller re-reads and recomputes on Conflict; no row locks are held.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DisconnectionError, IntegrityError, InterfaceError, OperationalError

from ..core.entities import Order, OrderDraft, Restaurant, Staff, StaffRole, new_id
from ..core.state_machine import OrderStatus
from ..exceptions import Conflict, NotFound, PersistenceUnavailable, ValidationError
from ..models import (
    OrderRecord,
    RestaurantRecord,
    StaffRecord,
    init_db,
    make_engine,
    make_sessionmaker,
)
from .order_store import ChangeKind, OrderChange, OrderStore, apply_patch

logger = logging.getLogger(__name__)

UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


class SqlOrderStore(OrderStore):
    """Order store over an async SQLAlchemy engine."""

    def __init__(self, database_url: str, echo: bool = False):
        super().__init__()
        self.database_url = database_url
        self.engine = make_engine(database_url, echo=echo)
        self._sessionmaker = make_sessionmaker(self.engine)

    async def init(self) -> None:
        try:
            await init_db(self.engine)
        except UNAVAILABLE_ERRORS as exc:
            raise PersistenceUnavailable(f"Order database unreachable: {exc}") from exc
        logger.info("Order database ready at %s", self.engine.url.render_as_string())

    async def close(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def _session(self):
        try:
            async with self._sessionmaker() as session:
                yield session
        except UNAVAILABLE_ERRORS as exc:
            raise PersistenceUnavailable(f"Order database unreachable: {exc}") from exc

    # Restaurants and staff

    async def add_restaurant(self, name: str, restaurant_id: Optional[str] = None) -> Restaurant:
        record = RestaurantRecord(id=restaurant_id or new_id(), name=name, is_active=True)
        async with self._session() as session:
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                raise ValidationError(f"Restaurant {record.id} already exists")
            return record.to_domain()

    async def restaurant_exists(self, restaurant_id: str) -> bool:
        async with self._session() as session:
            return await session.get(RestaurantRecord, restaurant_id) is not None

    async def add_staff(
        self,
        restaurant_id: str,
        full_name: str,
        role: StaffRole,
        staff_id: Optional[str] = None,
    ) -> Staff:
        async with self._session() as session:
            if await session.get(RestaurantRecord, restaurant_id) is None:
                raise NotFound(f"Restaurant {restaurant_id} not found")
            record = StaffRecord(
                id=staff_id or new_id(),
                restaurant_id=restaurant_id,
                full_name=full_name,
                role=StaffRole(role),
                is_active=True,
            )
            session.add(record)
            try:
                await session.commit()
            except IntegrityError:
                raise ValidationError(f"Staff member {record.id} already exists")
            return record.to_domain()

    async def get_staff(self, staff_id: str) -> Staff:
        async with self._session() as session:
            record = await session.get(StaffRecord, staff_id)
            if record is None:
                raise NotFound(f"Staff member {staff_id} not found")
            return record.to_domain()

    async def deactivate_staff(self, staff_id: str) -> Staff:
        async with self._session() as session:
            record = await session.get(StaffRecord, staff_id)
            if record is None:
                raise NotFound(f"Staff member {staff_id} not found")
            record.is_active = False
            await session.commit()
            return record.to_domain()

    async def list_staff(self, restaurant_id: str) -> List[Staff]:
        async with self._session() as session:
            result = await session.execute(
                select(StaffRecord)
                .where(StaffRecord.restaurant_id == restaurant_id)
                .order_by(StaffRecord.id)
            )
            return [r.to_domain() for r in result.scalars().all()]

    async def list_active_staff(self, restaurant_id: str, role: StaffRole) -> List[Staff]:
        async with self._session() as session:
            result = await session.execute(
                select(StaffRecord)
                .where(
                    StaffRecord.restaurant_id == restaurant_id,
                    StaffRecord.role == StaffRole(role),
                    StaffRecord.is_active.is_(True),
                )
                .order_by(StaffRecord.id)
            )
            return [r.to_domain() for r in result.scalars().all()]

    # Orders

    async def list_open_orders(self, restaurant_id: str) -> List[Order]:
        async with self._session() as session:
            result = await session.execute(
                select(OrderRecord).where(
                    OrderRecord.restaurant_id == restaurant_id,
                    OrderRecord.status != OrderStatus.COMPLETED,
                )
            )
            return [r.to_domain() for r in result.scalars().all()]

    async def list_orders(self, restaurant_id: str) -> List[Order]:
        async with self._session() as session:
            result = await session.execute(
                select(OrderRecord)
                .where(OrderRecord.restaurant_id == restaurant_id)
                .order_by(OrderRecord.ordered_at)
            )
            return [r.to_domain() for r in result.scalars().all()]

    async def create_order(self, draft: OrderDraft) -> Order:
        order = Order.from_draft(draft)
        async with self._session() as session:
            session.add(OrderRecord.from_domain(order))
            await session.commit()
        await self.feed.publish(OrderChange(kind=ChangeKind.CREATED, order=order))
        return order

    async def get_order(self, order_id: str) -> Order:
        async with self._session() as session:
            record = await session.get(OrderRecord, order_id)
            if record is None:
                raise NotFound(f"Order {order_id} not found")
            return record.to_domain()

    async def update_order(
        self, order_id: str, patch: Dict[str, Any], expected_version: int
    ) -> Order:
        async with self._session() as session:
            record = await session.get(OrderRecord, order_id)
            if record is None:
                raise NotFound(f"Order {order_id} not found")
            if record.version_id != expected_version:
                raise Conflict(
                    f"Order {order_id} is at version {record.version_id}, "
                    f"expected {expected_version}",
                    {"order_id": order_id},
                )

            updated = apply_patch(record.to_domain(), patch)
            values = OrderRecord.from_domain(updated)
            result = await session.execute(
                update(OrderRecord)
                .where(
                    OrderRecord.id == order_id,
                    OrderRecord.version_id == expected_version,
                )
                .values(
                    items=values.items,
                    status=values.status,
                    history=values.history,
                    updated_at=values.updated_at,
                    version_id=values.version_id,
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                # Another transaction committed between our read and write
                await session.rollback()
                raise Conflict(
                    f"Order {order_id} changed concurrently",
                    {"order_id": order_id},
                )
            await session.commit()

        await self.feed.publish(OrderChange(kind=ChangeKind.UPDATED, order=updated))
        return updated
