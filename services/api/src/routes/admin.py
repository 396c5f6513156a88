"""Admin endpoints for auction and account moderation."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from bidding.cas import auction_cas_retry
from bidding.context import BiddingContext
from bidding.errors import BiddingError
from bidding.identity import Identity
from bidding.stores import ConcurrentUpdateError
from models.entities.couchbase.auctions import AuctionStatus, InvalidStatusTransition
from utils import log

from .auctions import AuctionResponse, auction_to_response
from .dependencies import bidding_get, raise_http, require_admin

logger = log.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/auctions/pending", response_model=List[AuctionResponse])
async def admin_pending_auctions(
    user: Identity = Depends(require_admin),
    ctx: BiddingContext = Depends(bidding_get),
):
    auctions = await ctx.auctions.search(status=AuctionStatus.PENDING, limit=100)
    return [auction_to_response(a) for a in auctions]


async def _moderate(ctx: BiddingContext, auction_id: str, target: AuctionStatus, admin_id: str):
    try:
        auction = await auction_cas_retry(ctx.auctions, auction_id, lambda d: d.transition(target))
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BiddingError as e:
        raise_http(e)

    logger.info(f"Admin {admin_id} moved auction {auction_id} to {target.value}")
    return auction_to_response(auction)


@router.put("/auctions/{auction_id}/approve", response_model=AuctionResponse)
async def admin_approve_auction(
    auction_id: str,
    user: Identity = Depends(require_admin),
    ctx: BiddingContext = Depends(bidding_get),
):
    """Open a pending auction for bidding."""
    return await _moderate(ctx, auction_id, AuctionStatus.APPROVED, user.user_id)


@router.put("/auctions/{auction_id}/reject", response_model=AuctionResponse)
async def admin_reject_auction(
    auction_id: str,
    user: Identity = Depends(require_admin),
    ctx: BiddingContext = Depends(bidding_get),
):
    return await _moderate(ctx, auction_id, AuctionStatus.REJECTED, user.user_id)


# ---------------------------------------------------------------------------
# Account approval
# ---------------------------------------------------------------------------

class UserResponse(BaseModel):
    id: str
    full_name: str
    email: str
    role: str
    is_approved: bool


def user_to_response(user) -> UserResponse:
    d = user.data
    return UserResponse(
        id=user.id,
        full_name=d.full_name,
        email=d.email,
        role=d.role,
        is_approved=d.is_approved,
    )


@router.get("/users/pending", response_model=List[UserResponse])
async def admin_pending_users(
    user: Identity = Depends(require_admin),
    ctx: BiddingContext = Depends(bidding_get),
):
    users = await ctx.users.list_pending(limit=100)
    return [user_to_response(u) for u in users]


@router.put("/users/{user_id}/approve", response_model=UserResponse)
async def admin_approve_user(
    user_id: str,
    user: Identity = Depends(require_admin),
    ctx: BiddingContext = Depends(bidding_get),
):
    """Let a registered account act on the platform."""
    for _ in range(3):
        target = await ctx.users.get(user_id)
        if not target:
            raise HTTPException(status_code=404, detail="User not found")
        if target.data.is_approved:
            return user_to_response(target)
        target.data.is_approved = True
        try:
            target = await ctx.users.replace(target)
            break
        except ConcurrentUpdateError:
            logger.debug(f"CAS conflict approving user {user_id}, retrying")
    else:
        raise HTTPException(status_code=409, detail="Concurrent update conflict, please retry")

    logger.info(f"Admin {user.user_id} approved user {user_id}")
    return user_to_response(target)


@router.put("/users/{user_id}/reject")
async def admin_reject_user(
    user_id: str,
    user: Identity = Depends(require_admin),
    ctx: BiddingContext = Depends(bidding_get),
):
    """Reject a pending account and remove it."""
    target = await ctx.users.get(user_id)
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    if target.data.is_approved:
        raise HTTPException(status_code=400, detail="User is already approved")

    if not await ctx.users.delete(user_id):
        raise HTTPException(status_code=404, detail="User not found")

    logger.info(f"Admin {user.user_id} rejected and removed user {user_id}")
    return {"message": "User rejected and removed!", "userId": user_id}
