"""Order API routes: checkout, item progress and order status."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ...core.context import SessionContext
from ...core.entities import CartItem, CustomerInfo, Order
from ...core.orchestrator import OrderOrchestrator
from ...core.state_machine import OrderStatus
from ..deps import get_orchestrator, order_context, restaurant_context

router = APIRouter(tags=["orders"])


class CartItemIn(BaseModel):
    """One cart line as submitted at checkout."""

    dish_id: str
    name: str
    quantity: int = 1
    price: float


class OrderCreate(BaseModel):
    """Schema for submitting an order."""

    customer_name: str
    customer_phone: Optional[str] = None
    table_number: int
    items: List[CartItemIn]
    notes: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str


class LineItemResponse(BaseModel):
    line_id: str
    dish_id: str
    name: str
    quantity: int
    price: float
    assigned_cook_id: Optional[str]
    assigned_waiter_id: Optional[str]
    cook_status: str
    waiter_status: str
    status: str


class TransitionResponse(BaseModel):
    from_status: str
    to_status: str
    timestamp: str
    trigger: str
    metadata: Dict[str, Any] = {}


class OrderResponse(BaseModel):
    """Schema for order response."""

    id: str
    restaurant_id: str
    customer_name: str
    customer_phone: Optional[str]
    table_number: int
    items: List[LineItemResponse]
    total: float
    status: str
    notes: Optional[str]
    ordered_at: str
    updated_at: str
    version: int
    history: List[TransitionResponse]


def _response(order: Order) -> OrderResponse:
    return OrderResponse(**order.to_dict())


@router.post("/restaurants/{restaurant_id}/orders", response_model=OrderResponse, status_code=201)
async def submit_order(
    order_data: OrderCreate,
    ctx: SessionContext = Depends(restaurant_context),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """Submit a cart; every line is assigned a cook and a waiter."""
    order = await orchestrator.submit_order(
        ctx,
        customer=CustomerInfo(name=order_data.customer_name, phone=order_data.customer_phone),
        table_number=order_data.table_number,
        cart_items=[CartItem(**item.model_dump()) for item in order_data.items],
        notes=order_data.notes,
    )
    return _response(order)


@router.get("/restaurants/{restaurant_id}/orders", response_model=List[OrderResponse])
async def list_orders(
    status: Optional[str] = None,
    ctx: SessionContext = Depends(restaurant_context),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """Get all orders of a restaurant, optionally filtered by status."""
    order_status = None
    if status:
        try:
            order_status = OrderStatus(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {status}")

    orders = await orchestrator.list_orders(ctx, status=order_status)
    return [_response(o) for o in orders]


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    ctx: SessionContext = Depends(order_context),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    return _response(await orchestrator.get_order(ctx, order_id))


@router.post("/orders/{order_id}/items/{line_id}/cook", response_model=OrderResponse)
async def advance_cook_status(
    order_id: str,
    line_id: str,
    update: StatusUpdate,
    ctx: SessionContext = Depends(order_context),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """Cook moves one line item to its next step."""
    order = await orchestrator.advance_cook_status(ctx, order_id, line_id, update.status)
    return _response(order)


@router.post("/orders/{order_id}/items/{line_id}/waiter", response_model=OrderResponse)
async def advance_waiter_status(
    order_id: str,
    line_id: str,
    update: StatusUpdate,
    ctx: SessionContext = Depends(order_context),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """Waiter moves one line item to its next step."""
    order = await orchestrator.advance_waiter_status(ctx, order_id, line_id, update.status)
    return _response(order)


@router.post("/orders/{order_id}/status", response_model=OrderResponse)
async def set_order_status(
    order_id: str,
    update: StatusUpdate,
    ctx: SessionContext = Depends(order_context),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    order = await orchestrator.set_order_status(ctx, order_id, update.status)
    return _response(order)
