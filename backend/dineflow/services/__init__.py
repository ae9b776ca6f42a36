"""Services module for the order service."""

from .notification import NotificationService, NotificationSink
from .order_store import InMemoryOrderStore, OrderStore
from .sql_store import SqlOrderStore

__all__ = [
    "NotificationService",
    "NotificationSink",
    "InMemoryOrderStore",
    "OrderStore",
    "SqlOrderStore",
]
