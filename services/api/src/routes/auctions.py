"""
API endpoints for auctions.

POST /auctions: create an auction, pending admin approval (dealer)
GET  /auctions: list auctions by status, category or live window (public)
GET  /auctions/mine: dealer's own auctions
GET  /auctions/{id}: auction detail
GET  /auctions/{id}/bids: bid history, highest first
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, model_validator

from bidding.context import BiddingContext
from bidding.identity import Identity
from models.civil_time import CivilTimestamp
from models.entities.couchbase.auctions import AuctionData, AuctionStatus
from utils import log

from .dependencies import bidding_get, require_dealer

logger = log.get_logger(__name__)

router = APIRouter(prefix="/auctions", tags=["auctions"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------

class CreateAuctionRequest(BaseModel):
    item_name: str = Field(min_length=1)
    base_price: float = Field(gt=0)
    category_id: str = Field(min_length=1)
    category_specs: str = ""
    image_url: Optional[str] = None
    start_date: CivilTimestamp
    end_date: CivilTimestamp

    @model_validator(mode="after")
    def _window(self):
        # Civil timestamps sort chronologically as strings
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class AuctionResponse(BaseModel):
    id: str
    item_name: str
    base_price: float
    dealer_id: str
    category_id: str
    category_specs: str
    image_url: Optional[str] = None
    status: AuctionStatus
    start_date: str
    end_date: str
    current_high_bid_amount: Optional[float] = None
    current_high_bidder_id: Optional[str] = None
    bid_count: int
    winner_id: Optional[str] = None
    winning_amount: Optional[float] = None
    closed_at: Optional[str] = None


class BidResponse(BaseModel):
    id: str
    auction_id: str
    user_id: str
    bid_amount: float
    timestamp: str


def auction_to_response(auction) -> AuctionResponse:
    d = auction.data
    return AuctionResponse(
        id=auction.id,
        item_name=d.item_name,
        base_price=d.base_price,
        dealer_id=d.dealer_id,
        category_id=d.category_id,
        category_specs=d.category_specs,
        image_url=d.image_url,
        status=d.status,
        start_date=d.start_date,
        end_date=d.end_date,
        current_high_bid_amount=d.current_high_bid_amount,
        current_high_bidder_id=d.current_high_bidder_id,
        bid_count=d.bid_count,
        winner_id=d.winner_id,
        winning_amount=d.winning_amount,
        closed_at=d.closed_at,
    )


def bid_to_response(bid) -> BidResponse:
    d = bid.data
    return BidResponse(
        id=bid.id,
        auction_id=d.auction_id,
        user_id=d.user_id,
        bid_amount=d.bid_amount,
        timestamp=d.timestamp,
    )


# ---------------------------------------------------------------------------
# POST /auctions: create auction
# ---------------------------------------------------------------------------

@router.post("", response_model=AuctionResponse, status_code=201)
async def route_auction_create(
    body: CreateAuctionRequest,
    user: Identity = Depends(require_dealer),
    ctx: BiddingContext = Depends(bidding_get),
):
    """Create an auction. It stays pending until an admin approves it."""
    data = AuctionData(dealer_id=user.user_id, **body.model_dump())
    try:
        auction = await ctx.auctions.create(user.user_id, data)
    except Exception as e:
        logger.error(f"Failed to create auction for dealer {user.user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Server error")

    logger.info(f"Auction {auction.id} created by dealer {user.user_id}, awaiting approval")
    return auction_to_response(auction)


# ---------------------------------------------------------------------------
# GET /auctions: list auctions
# ---------------------------------------------------------------------------

@router.get("", response_model=List[AuctionResponse])
async def route_auctions_list(
    status: AuctionStatus = AuctionStatus.APPROVED,
    category_id: Optional[str] = None,
    live: bool = False,
    limit: int = Query(default=50, ge=1, le=100),
    ctx: BiddingContext = Depends(bidding_get),
):
    """List auctions in one status, soonest ending first.

    With ``live=true`` only auctions whose bidding window contains the
    current time are returned.
    """
    live_at = ctx.clock.stamp() if live else None
    auctions = await ctx.auctions.search(
        status=status, category_id=category_id, live_at=live_at, limit=limit
    )
    return [auction_to_response(a) for a in auctions]


# ---------------------------------------------------------------------------
# GET /auctions/mine: dealer's own auctions
# ---------------------------------------------------------------------------

@router.get("/mine", response_model=List[AuctionResponse])
async def route_auctions_mine(
    user: Identity = Depends(require_dealer),
    ctx: BiddingContext = Depends(bidding_get),
):
    auctions = await ctx.auctions.search(dealer_id=user.user_id, limit=100)
    return [auction_to_response(a) for a in auctions]


# ---------------------------------------------------------------------------
# GET /auctions/{id}: auction detail
# ---------------------------------------------------------------------------

@router.get("/{auction_id}", response_model=AuctionResponse)
async def route_auction_detail(auction_id: str, ctx: BiddingContext = Depends(bidding_get)):
    auction = await ctx.auctions.get(auction_id)
    if not auction:
        raise HTTPException(status_code=404, detail="Auction not found!")
    return auction_to_response(auction)


# ---------------------------------------------------------------------------
# GET /auctions/{id}/bids: bid history
# ---------------------------------------------------------------------------

@router.get("/{auction_id}/bids", response_model=List[BidResponse])
async def route_auction_bids(auction_id: str, ctx: BiddingContext = Depends(bidding_get)):
    """Bid history for an auction, ordered by amount descending."""
    auction = await ctx.auctions.get(auction_id)
    if not auction:
        raise HTTPException(status_code=404, detail="Auction not found!")
    bids = await ctx.ledger.list_for_auction(auction_id)
    return [bid_to_response(b) for b in bids]
