"""Best-effort notification sink for customers and staff."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.state_machine import OrderStatus, utcnow

logger = logging.getLogger(__name__)

Broadcaster = Callable[[dict], Awaitable[None]]


def order_status_message(status: OrderStatus, order_id: str, table_number: int) -> str:
    """Customer-facing text for an order status change."""
    ref = f"(Order #{order_id[-8:].upper()}, Table {table_number})"
    messages = {
        OrderStatus.PENDING: "We have received your order.",
        OrderStatus.PREPARING: "The kitchen has started on your food.",
        OrderStatus.READY: "Your food is prepared and waiting to be plated out.",
        OrderStatus.SERVING: "Your food is on its way to your table.",
        OrderStatus.SERVED: "Your food has arrived. Enjoy your meal!",
        OrderStatus.COMPLETED: "All done. Thanks for dining with us, come back soon!",
    }
    text = messages.get(status, f"Your order status is now {status.value}.")
    return f"{text} {ref}"


def order_status_tag(order_id: str, status: OrderStatus) -> str:
    return f"order-{order_id}-{status.value}"


@dataclass
class Notification:
    """Notification data structure."""

    id: str
    title: str
    body: str
    tag: str
    icon: Optional[str] = None
    actions: List[Dict[str, str]] = field(default_factory=list)
    target_staff_ids: List[str] = field(default_factory=list)
    order_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    delivered: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "tag": self.tag,
            "icon": self.icon,
            "actions": self.actions,
            "target_staff_ids": self.target_staff_ids,
            "order_id": self.order_id,
            "created_at": self.created_at.isoformat(),
            "delivered": self.delivered,
        }


class NotificationSink(ABC):
    """Receives (title, body, tag) triples. Delivery is fire-and-forget."""

    @abstractmethod
    async def notify(
        self,
        title: str,
        body: str,
        tag: str,
        icon: Optional[str] = None,
        actions: Optional[List[Dict[str, str]]] = None,
        **context: Any,
    ) -> Optional[Notification]:
        pass


class NotificationService(NotificationSink):
    """Queues notifications and dispatches them from a background loop."""

    def __init__(
        self,
        broadcaster: Optional[Broadcaster] = None,
        max_history: int = 1000,
        default_icon: Optional[str] = None,
    ):
        self.notification_queue: asyncio.Queue = asyncio.Queue()
        self.notification_history: List[Notification] = []
        self.max_history = max_history
        self.default_icon = default_icon
        self.broadcaster = broadcaster
        self._running = False
        self._counter = 0

    async def start(self):
        """Start the notification processing loop."""
        self._running = True
        logger.info("Notification service started")

        while self._running:
            try:
                notification = await asyncio.wait_for(
                    self.notification_queue.get(), timeout=1.0
                )
            except asyncio.TimeoutError:
                continue
            await self._process_notification(notification)

        logger.info("Notification service stopped")

    async def stop(self):
        """Stop the notification service."""
        self._running = False

    def _generate_id(self) -> str:
        self._counter += 1
        return f"notif_{utcnow().strftime('%Y%m%d%H%M%S')}_{self._counter}"

    async def notify(
        self,
        title: str,
        body: str,
        tag: str,
        icon: Optional[str] = None,
        actions: Optional[List[Dict[str, str]]] = None,
        **context: Any,
    ) -> Notification:
        """Queue a notification for delivery."""
        notification = Notification(
            id=self._generate_id(),
            title=title,
            body=body,
            tag=tag,
            icon=icon or self.default_icon,
            actions=actions or [],
            target_staff_ids=list(context.get("target_staff_ids") or []),
            order_id=context.get("order_id"),
        )
        self.notification_queue.put_nowait(notification)
        return notification

    async def drain(self) -> int:
        """Dispatch everything queued so far without the background loop."""
        processed = 0
        while not self.notification_queue.empty():
            await self._process_notification(self.notification_queue.get_nowait())
            processed += 1
        return processed

    async def _process_notification(self, notification: Notification):
        """Dispatch a notification and keep it in history."""
        try:
            if self.broadcaster is not None:
                await self.broadcaster({"type": "notification", "data": notification.to_dict()})
            notification.delivered = True
        except Exception:
            logger.exception("Failed to dispatch notification %s", notification.id)

        self.notification_history.append(notification)
        if len(self.notification_history) > self.max_history:
            self.notification_history = self.notification_history[-self.max_history :]

    def get_recent_notifications(
        self,
        limit: int = 50,
        staff_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> List[Notification]:
        """Get recent notifications, optionally filtered by staff or order."""
        notifications = self.notification_history
        if staff_id:
            notifications = [n for n in notifications if staff_id in n.target_staff_ids]
        if order_id:
            notifications = [n for n in notifications if n.order_id == order_id]
        return notifications[-limit:]
