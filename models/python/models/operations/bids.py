"""
Bid ledger queries.

Bids are append-only: there is no update or delete here. Placement rules
live in the bidding service.
"""

from typing import List, Optional

from couchbase.n1ql import QueryScanConsistency

from models.entities.couchbase.bids import Bid, BidData


async def bid_create(data: BidData, key: Optional[str] = None) -> Bid:
    return await Bid.create(data, key=key, user_id=data.user_id)


async def bid_get_highest(auction_id: str) -> Optional[Bid]:
    """Highest bid for an auction by amount, or None when it has no bids."""
    bids = await bid_get_by_auction(auction_id, limit=1)
    return bids[0] if bids else None


async def bid_count_in_window(auction_id: str, user_id: str, window_start: str) -> int:
    """Count a user's bids on an auction stamped at or after *window_start*."""
    keyspace = Bid.get_keyspace()
    query = (
        f"SELECT RAW COUNT(*) FROM {keyspace} "
        f"WHERE auction_id = $auction_id AND user_id = $user_id "
        f"AND `timestamp` >= $window_start"
    )
    rows = await keyspace.query(
        query,
        scan_consistency=QueryScanConsistency.REQUEST_PLUS,
        auction_id=auction_id,
        user_id=user_id,
        window_start=window_start,
    )
    return int(rows[0]) if rows else 0


async def bid_get_by_auction(auction_id: str, limit: int = 100) -> List[Bid]:
    """Get bids for an auction, ordered by amount descending."""
    keyspace = Bid.get_keyspace()
    query = (
        f"SELECT META().id, * FROM {keyspace} "
        f"WHERE auction_id = $auction_id "
        f"ORDER BY bid_amount DESC "
        f"LIMIT {limit}"
    )
    # Placement and the expiry sweep read the highest bid through here
    rows = await keyspace.query(
        query, scan_consistency=QueryScanConsistency.REQUEST_PLUS, auction_id=auction_id
    )
    return [
        Bid(id=row["id"], data=row.get("bids"))
        for row in rows if row.get("bids")
    ]


async def bid_get_by_user(user_id: str, limit: int = 50) -> List[Bid]:
    """Get a bidder's bid history, ordered by most recent first."""
    keyspace = Bid.get_keyspace()
    query = (
        f"SELECT META().id, * FROM {keyspace} "
        f"WHERE user_id = $user_id "
        f"ORDER BY `timestamp` DESC "
        f"LIMIT {limit}"
    )
    rows = await keyspace.query(query, user_id=user_id)
    return [
        Bid(id=row["id"], data=row.get("bids"))
        for row in rows if row.get("bids")
    ]
