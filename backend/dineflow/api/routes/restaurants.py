"""Restaurant registration and workload dashboard routes."""

from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ...core.context import SessionContext
from ...core.orchestrator import OrderOrchestrator
from ...services.order_store import OrderStore
from ..deps import get_orchestrator, get_store, restaurant_context

router = APIRouter(prefix="/restaurants", tags=["restaurants"])


class RestaurantCreate(BaseModel):
    name: str
    id: Optional[str] = None


class RestaurantResponse(BaseModel):
    id: str
    name: str
    is_active: bool


class WorkloadResponse(BaseModel):
    """Open line items per active cook and waiter."""

    cook_load: Dict[str, int]
    waiter_load: Dict[str, int]
    cook_spread: int
    waiter_spread: int


@router.post("", response_model=RestaurantResponse, status_code=201)
async def create_restaurant(
    restaurant_data: RestaurantCreate,
    store: OrderStore = Depends(get_store),
):
    if not restaurant_data.name.strip():
        raise HTTPException(status_code=400, detail="Restaurant name is required")

    restaurant = await store.add_restaurant(
        restaurant_data.name.strip(), restaurant_id=restaurant_data.id
    )
    return RestaurantResponse(
        id=restaurant.id, name=restaurant.name, is_active=restaurant.is_active
    )


@router.get("/{restaurant_id}/workload", response_model=WorkloadResponse)
async def get_workload(
    ctx: SessionContext = Depends(restaurant_context),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """Current per-staff load, as the assignment step sees it."""
    snapshot = await orchestrator.workload(ctx)
    return WorkloadResponse(**snapshot.to_dict())
