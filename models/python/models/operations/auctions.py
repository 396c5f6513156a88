"""
Auction record operations against Couchbase.

Status changes and high-bid head moves go through ``auction_replace`` with
the CAS value read alongside the document; the retry loop around it lives in
the bidding core so the in-memory backend shares it.
"""

from typing import Any, Dict, List, Optional

from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus


async def auction_create(dealer_id: str, data: AuctionData) -> Auction:
    data.dealer_id = dealer_id
    data.status = AuctionStatus.PENDING
    return await Auction.create(data, user_id=dealer_id)


async def auction_get(auction_id: str) -> Optional[Auction]:
    return await Auction.get(auction_id)


async def auction_replace(auction: Auction) -> Auction:
    """CAS-guarded replace. Raises CASMismatchException on a stale read."""
    return await Auction.update(auction)


async def auction_search(
    status: Optional[AuctionStatus] = None,
    dealer_id: Optional[str] = None,
    category_id: Optional[str] = None,
    live_at: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Auction]:
    """Search auctions. *live_at* keeps those whose bidding window contains it."""
    keyspace = Auction.get_keyspace()
    conditions = []
    params: Dict[str, Any] = {}

    if status:
        conditions.append("status = $status")
        params["status"] = status.value
    if dealer_id:
        conditions.append("dealer_id = $dealer_id")
        params["dealer_id"] = dealer_id
    if category_id:
        conditions.append("category_id = $category_id")
        params["category_id"] = category_id
    if live_at:
        conditions.append("start_date <= $live_at AND end_date >= $live_at")
        params["live_at"] = live_at

    where = " AND ".join(conditions) if conditions else "1=1"
    query = (
        f"SELECT META().id, * FROM {keyspace} "
        f"WHERE {where} "
        f"ORDER BY end_date ASC "
        f"LIMIT {limit} OFFSET {offset}"
    )
    rows = await keyspace.query(query, **params)
    return [
        Auction(id=row["id"], data=row.get("auctions"))
        for row in rows if row.get("auctions")
    ]


async def auction_get_expired(now: str) -> List[Auction]:
    """Approved auctions whose end_date is strictly before *now* (civil string)."""
    keyspace = Auction.get_keyspace()
    query = (
        f"SELECT META().id, * FROM {keyspace} "
        f"WHERE status = $status AND end_date < $now "
        f"ORDER BY end_date ASC"
    )
    rows = await keyspace.query(query, status=AuctionStatus.APPROVED.value, now=now)
    return [
        Auction(id=row["id"], data=row.get("auctions"))
        for row in rows if row.get("auctions")
    ]
