from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import Field

from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData
from models.civil_time import CivilTimestamp


class AuctionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLOSED = "closed"


# pending -> approved | rejected, approved -> closed; rejected and closed are terminal
ALLOWED_TRANSITIONS: Dict[AuctionStatus, FrozenSet[AuctionStatus]] = {
    AuctionStatus.PENDING: frozenset({AuctionStatus.APPROVED, AuctionStatus.REJECTED}),
    AuctionStatus.APPROVED: frozenset({AuctionStatus.CLOSED}),
    AuctionStatus.REJECTED: frozenset(),
    AuctionStatus.CLOSED: frozenset(),
}


class InvalidStatusTransition(ValueError):
    def __init__(self, current: AuctionStatus, target: AuctionStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move auction from '{current.value}' to '{target.value}'")


class AuctionData(BaseCouchbaseEntityData):
    item_name: str
    base_price: float = Field(gt=0)
    dealer_id: str
    category_id: str
    category_specs: str = ""
    image_url: Optional[str] = None

    status: AuctionStatus = AuctionStatus.PENDING
    start_date: CivilTimestamp
    end_date: CivilTimestamp

    # Denormalized high-bid head, moved only through a CAS-guarded update
    current_high_bid_id: Optional[str] = None
    current_high_bid_amount: Optional[float] = None
    current_high_bidder_id: Optional[str] = None
    bid_count: int = 0
    # Per-bidder commit stamps still inside the rate-limit window
    recent_bids: Dict[str, List[CivilTimestamp]] = Field(default_factory=dict)

    # Settlement, written in the same update that closes the auction
    winner_id: Optional[str] = None
    winning_bid_id: Optional[str] = None
    winning_amount: Optional[float] = None
    closed_at: Optional[CivilTimestamp] = None

    def transition(self, target: AuctionStatus) -> None:
        """Move to *target*, rejecting anything the transition table forbids."""
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(self.status, target)
        self.status = target


class Auction(BaseModelCouchbase[AuctionData]):
    _collection_name = "auctions"
