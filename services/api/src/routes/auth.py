from fastapi import APIRouter, Depends, HTTPException

from bidding.context import BiddingContext
from bidding.identity import Identity
from utils import log
from utils.auth import token_expires_at

from .dependencies import bidding_get, current_user_get

logger = log.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/logout")
async def route_logout(
    user: Identity = Depends(current_user_get),
    ctx: BiddingContext = Depends(bidding_get),
):
    """Revoke the presented token until it would have expired anyway."""
    try:
        await ctx.revocations.revoke(user.token, user.user_id, token_expires_at(user.claims))
    except Exception as e:
        logger.error(f"Failed to revoke token for user {user.user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Server error")

    logger.info(f"User {user.user_id} logged out")
    return {"message": "Logged out successfully!"}
