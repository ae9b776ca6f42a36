"""Staff management API routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ...core.context import SessionContext
from ...core.entities import StaffRole
from ...core.orchestrator import OrderOrchestrator
from ...exceptions import NotFound
from ...services.order_store import OrderStore
from ..deps import (
    ConnectionManager,
    get_connection_manager,
    get_orchestrator,
    get_store,
    restaurant_context,
)

router = APIRouter(prefix="/restaurants/{restaurant_id}/staff", tags=["staff"])


class StaffCreate(BaseModel):
    """Schema for creating a staff member."""

    full_name: str
    role: str


class StaffResponse(BaseModel):
    """Schema for staff response."""

    id: str
    restaurant_id: str
    full_name: str
    role: str
    is_active: bool
    created_at: str


class TaskResponse(BaseModel):
    order_id: str
    line_id: str
    dish_name: str
    quantity: int
    table_number: int
    customer_name: str
    order_status: str
    cook_status: str
    waiter_status: str


@router.get("", response_model=List[StaffResponse])
async def get_staff(
    restaurant_id: str,
    role: Optional[str] = None,
    active: Optional[bool] = None,
    store: OrderStore = Depends(get_store),
):
    """Get all staff members, optionally filtered."""
    if not await store.restaurant_exists(restaurant_id):
        raise NotFound(f"Restaurant {restaurant_id} not found")

    staff_members = await store.list_staff(restaurant_id)

    if role:
        try:
            staff_role = StaffRole(role)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid role: {role}")
        staff_members = [s for s in staff_members if s.role == staff_role]

    if active is not None:
        staff_members = [s for s in staff_members if s.is_active == active]

    return [StaffResponse(**s.to_dict()) for s in staff_members]


@router.post("", response_model=StaffResponse, status_code=201)
async def create_staff(
    restaurant_id: str,
    staff_data: StaffCreate,
    store: OrderStore = Depends(get_store),
    ws_manager: ConnectionManager = Depends(get_connection_manager),
):
    """Create a new cook or waiter."""
    try:
        role = StaffRole(staff_data.role)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid role: {staff_data.role}")

    if not staff_data.full_name.strip():
        raise HTTPException(status_code=400, detail="Staff name is required")

    staff = await store.add_staff(restaurant_id, staff_data.full_name.strip(), role)

    await ws_manager.broadcast({"type": "staff_created", "data": staff.to_dict()})

    return StaffResponse(**staff.to_dict())


@router.post("/{staff_id}/deactivate", response_model=StaffResponse)
async def deactivate_staff(
    restaurant_id: str,
    staff_id: str,
    store: OrderStore = Depends(get_store),
    ws_manager: ConnectionManager = Depends(get_connection_manager),
):
    """Take a staff member out of future assignment. Existing tasks are kept."""
    staff = await store.get_staff(staff_id)
    if staff.restaurant_id != restaurant_id:
        raise NotFound(f"Staff member {staff_id} not found")

    staff = await store.deactivate_staff(staff_id)

    await ws_manager.broadcast({"type": "staff_updated", "data": staff.to_dict()})

    return StaffResponse(**staff.to_dict())


@router.get("/{staff_id}/tasks", response_model=List[TaskResponse])
async def get_assigned_tasks(
    staff_id: str,
    include_finished: bool = False,
    ctx: SessionContext = Depends(restaurant_context),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """The cook's or waiter's queue of line items."""
    ctx = SessionContext(restaurant_id=ctx.restaurant_id, staff_id=staff_id, role=ctx.role)
    tasks = await orchestrator.list_assigned_tasks(ctx, include_finished=include_finished)
    return [TaskResponse(**t.to_dict()) for t in tasks]
