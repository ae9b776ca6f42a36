"""API route modules."""

from . import notifications, orders, restaurants, staff, websocket

__all__ = ["notifications", "orders", "restaurants", "staff", "websocket"]
