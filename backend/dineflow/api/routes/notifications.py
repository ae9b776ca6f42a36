"""Recent notification history for staff and customer screens."""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...services.notification import NotificationService
from ..deps import get_notifier

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    id: str
    title: str
    body: str
    tag: str
    icon: Optional[str]
    actions: List[Dict[str, str]]
    target_staff_ids: List[str]
    order_id: Optional[str]
    created_at: str
    delivered: bool


@router.get("", response_model=List[NotificationResponse])
async def get_notifications(
    limit: int = 50,
    staff_id: Optional[str] = None,
    order_id: Optional[str] = None,
    notifier: NotificationService = Depends(get_notifier),
):
    """Get recent notifications, newest last."""
    notifications = notifier.get_recent_notifications(
        limit=limit, staff_id=staff_id, order_id=order_id
    )
    return [NotificationResponse(**n.to_dict()) for n in notifications]
