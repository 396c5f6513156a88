"""
API endpoints for bidding.

POST /bids/place: place a bid on an approved auction
GET  /bids/me: the caller's bids, most recent first
"""

from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from bidding.context import BiddingContext
from bidding.errors import BiddingError
from bidding.identity import Identity
from utils import log

from .auctions import BidResponse, bid_to_response
from .dependencies import bidding_get, current_user_get, raise_http, security

logger = log.get_logger(__name__)

router = APIRouter(prefix="/bids", tags=["bids"])


class PlaceBidRequest(BaseModel):
    # Loosely typed: shape errors are reported by the placement service
    auction_id: Optional[Any] = Field(default=None, validation_alias=AliasChoices("auctionId", "auction_id"))
    bid_amount: Optional[Any] = Field(default=None, validation_alias=AliasChoices("bidAmount", "bid_amount"))


class PlaceBidResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    current_highest_bid: float = Field(serialization_alias="currentHighestBid")
    timestamp: str


@router.post("/place", response_model=PlaceBidResponse, response_model_by_alias=True)
async def route_bid_place(
    body: PlaceBidRequest,
    ctx: BiddingContext = Depends(bidding_get),
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
):
    """Place a bid. Identity is resolved inside the placement flow so its failures keep their order."""
    try:
        placed = await ctx.placement.place_bid(
            token.credentials if token else None, body.auction_id, body.bid_amount
        )
    except BiddingError as e:
        raise_http(e)

    return PlaceBidResponse(
        message="Bid placed successfully!",
        current_highest_bid=placed.amount,
        timestamp=placed.timestamp,
    )


@router.get("/me", response_model=List[BidResponse])
async def route_bids_mine(
    user: Identity = Depends(current_user_get),
    ctx: BiddingContext = Depends(bidding_get),
):
    bids = await ctx.ledger.list_for_user(user.user_id)
    return [bid_to_response(b) for b in bids]
