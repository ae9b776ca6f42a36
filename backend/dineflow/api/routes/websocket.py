"""WebSocket routes for real-time order tracking."""

import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ...core.context import SessionContext
from ...core.orchestrator import OrderOrchestrator
from ...exceptions import DineflowError
from ...services.order_store import OrderChange
from ..deps import ConnectionManager, get_connection_manager, get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


@router.websocket("/ws/orders/{order_id}")
async def order_updates(
    websocket: WebSocket,
    order_id: str,
    restaurant_id: str,
    manager: ConnectionManager = Depends(get_connection_manager),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """Push the order to the client on every change until it disconnects."""
    ctx = SessionContext(restaurant_id=restaurant_id)
    await manager.connect(websocket)

    async def push(change: OrderChange):
        await manager.send_personal(
            {"type": f"order_{change.kind.value}", "data": change.order.to_dict()},
            websocket,
        )

    subscription = None
    try:
        order = await orchestrator.get_order(ctx, order_id)
        subscription = await orchestrator.subscribe_order(ctx, order_id, push)

        # Send initial state on connection
        await manager.send_personal({"type": "initial_state", "data": order.to_dict()}, websocket)

        # Listen for messages from client
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send_personal(
                    {"type": "error", "message": "Messages must be JSON"}, websocket
                )
                continue
            await handle_client_message(message, websocket, manager, orchestrator, ctx, order_id)

    except WebSocketDisconnect:
        pass
    except DineflowError as exc:
        await manager.send_personal({"type": "error", "message": exc.message}, websocket)
        await websocket.close(code=1008)
    finally:
        if subscription is not None:
            subscription.unsubscribe()
        manager.disconnect(websocket)


async def handle_client_message(
    message: dict,
    websocket: WebSocket,
    manager: ConnectionManager,
    orchestrator: OrderOrchestrator,
    ctx: SessionContext,
    order_id: str,
):
    """Handle incoming WebSocket messages from clients."""
    msg_type = message.get("type")

    if msg_type == "ping":
        # Heartbeat
        await manager.send_personal({"type": "pong"}, websocket)

    elif msg_type == "request_state":
        order = await orchestrator.get_order(ctx, order_id)
        await manager.send_personal({"type": "state_update", "data": order.to_dict()}, websocket)

    else:
        await manager.send_personal(
            {"type": "error", "message": f"Unknown message type: {msg_type}"}, websocket
        )
