from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from bidding.context import BiddingContext
from bidding.identity import Identity
from models.entities.couchbase.notifications import NotificationType
from utils import log

from .dependencies import bidding_get, current_user_get

logger = log.get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    id: str
    auction_id: str
    message: str
    type: NotificationType
    read: bool
    timestamp: str


def _to_response(notification) -> NotificationResponse:
    d = notification.data
    return NotificationResponse(
        id=notification.id,
        auction_id=d.auction_id,
        message=d.message,
        type=d.type,
        read=d.read,
        timestamp=d.timestamp,
    )


@router.get("/me", response_model=List[NotificationResponse])
async def route_notifications_mine(
    user: Identity = Depends(current_user_get),
    ctx: BiddingContext = Depends(bidding_get),
):
    """The caller's notifications, newest first."""
    notifications = await ctx.notifications.list_for_user(user.user_id)
    return [_to_response(n) for n in notifications]


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def route_notification_mark_read(
    notification_id: str,
    user: Identity = Depends(current_user_get),
    ctx: BiddingContext = Depends(bidding_get),
):
    notification = await ctx.notifications.mark_read(notification_id, user.user_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    return _to_response(notification)
