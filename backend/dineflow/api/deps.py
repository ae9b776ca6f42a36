"""API dependencies for dependency injection."""

import json
import logging
from typing import List, Optional

from fastapi import Header, WebSocket
from starlette.requests import HTTPConnection

from ..core.context import SessionContext
from ..core.entities import StaffRole
from ..core.orchestrator import OrderOrchestrator
from ..services.notification import NotificationService
from ..services.order_store import OrderStore

logger = logging.getLogger(__name__)


class ConnectionManager:
    """WebSocket connection manager for real-time updates."""

    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: dict):
        """Broadcast message to all connected clients."""
        for connection in list(self.active_connections):
            await self.send_personal(message, connection)

    async def send_personal(self, message: dict, websocket: WebSocket):
        """Send message to specific client."""
        try:
            await websocket.send_text(json.dumps(message))
        except Exception:
            logger.info("Dropping websocket client after failed send", exc_info=True)
            self.disconnect(websocket)


def get_connection_manager(conn: HTTPConnection) -> ConnectionManager:
    return conn.app.state.connection_manager


def get_store(conn: HTTPConnection) -> OrderStore:
    return conn.app.state.store


def get_orchestrator(conn: HTTPConnection) -> OrderOrchestrator:
    return conn.app.state.orchestrator


def get_notifier(conn: HTTPConnection) -> NotificationService:
    return conn.app.state.notifier


def _context(
    restaurant_id: str, staff_id: Optional[str], staff_role: Optional[StaffRole]
) -> SessionContext:
    return SessionContext(restaurant_id=restaurant_id, staff_id=staff_id, role=staff_role)


# Header parameters are prefixed so they never share a name with a path
# parameter of the route that depends on them (e.g. /staff/{staff_id}/tasks).


def restaurant_context(
    restaurant_id: str,
    header_staff_id: Optional[str] = Header(None, alias="X-Staff-Id"),
    header_staff_role: Optional[StaffRole] = Header(None, alias="X-Staff-Role"),
) -> SessionContext:
    """Session context for routes scoped by a restaurant path segment."""
    return _context(restaurant_id, header_staff_id, header_staff_role)


def order_context(
    header_restaurant_id: str = Header(..., alias="X-Restaurant-Id"),
    header_staff_id: Optional[str] = Header(None, alias="X-Staff-Id"),
    header_staff_role: Optional[StaffRole] = Header(None, alias="X-Staff-Role"),
) -> SessionContext:
    """Session context for routes addressed by order id alone."""
    return _context(header_restaurant_id, header_staff_id, header_staff_role)
