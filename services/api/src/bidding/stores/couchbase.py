"""Couchbase-backed stores: thin adapters over models.operations."""

from datetime import datetime
from typing import List, Optional

from clients.couchbase import CASMismatchException, DocumentExistsException
from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.bids import Bid, BidData
from models.entities.couchbase.notifications import Notification, NotificationData
from models.entities.couchbase.users import User
from models.operations.auctions import (
    auction_create,
    auction_get,
    auction_get_expired,
    auction_replace,
    auction_search,
)
from models.operations.bids import (
    bid_count_in_window,
    bid_create,
    bid_get_by_auction,
    bid_get_by_user,
    bid_get_highest,
)
from models.operations.notifications import (
    notification_create,
    notification_get_by_user,
    notification_mark_read,
)
from models.operations.revoked_tokens import token_is_revoked, token_revoke
from models.operations.users import user_delete, user_get, user_get_pending, user_replace

from . import ConcurrentUpdateError, DuplicateKeyError


class CouchbaseAuctionStore:
    async def create(self, dealer_id: str, data: AuctionData) -> Auction:
        return await auction_create(dealer_id, data)

    async def get(self, auction_id: str) -> Optional[Auction]:
        return await auction_get(auction_id)

    async def replace(self, auction: Auction) -> Auction:
        try:
            return await auction_replace(auction)
        except CASMismatchException as e:
            raise ConcurrentUpdateError(f"Auction {auction.id} changed concurrently") from e

    async def search(
        self,
        status: Optional[AuctionStatus] = None,
        dealer_id: Optional[str] = None,
        category_id: Optional[str] = None,
        live_at: Optional[str] = None,
        limit: int = 50,
    ) -> List[Auction]:
        return await auction_search(
            status=status, dealer_id=dealer_id, category_id=category_id, live_at=live_at, limit=limit
        )

    async def list_expired(self, now: str) -> List[Auction]:
        return await auction_get_expired(now)


class CouchbaseBidLedger:
    async def append(self, data: BidData, key: str) -> Bid:
        try:
            return await bid_create(data, key=key)
        except DocumentExistsException as e:
            raise DuplicateKeyError(f"Bid {key} already exists") from e

    async def highest_bid(self, auction_id: str) -> Optional[Bid]:
        return await bid_get_highest(auction_id)

    async def count_in_window(self, auction_id: str, user_id: str, window_start: str) -> int:
        return await bid_count_in_window(auction_id, user_id, window_start)

    async def list_for_auction(self, auction_id: str, limit: int = 100) -> List[Bid]:
        return await bid_get_by_auction(auction_id, limit=limit)

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Bid]:
        return await bid_get_by_user(user_id, limit=limit)


class CouchbaseNotificationSink:
    async def create(self, data: NotificationData, key: Optional[str] = None) -> Notification:
        try:
            return await notification_create(data, key=key)
        except DocumentExistsException as e:
            raise DuplicateKeyError(f"Notification {key} already exists") from e

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        return await notification_get_by_user(user_id, limit=limit)

    async def mark_read(self, notification_id: str, user_id: str) -> Optional[Notification]:
        return await notification_mark_read(notification_id, user_id)


class CouchbaseUserDirectory:
    async def get(self, user_id: str) -> Optional[User]:
        return await user_get(user_id)

    async def list_pending(self, limit: int = 100) -> List[User]:
        return await user_get_pending(limit=limit)

    async def replace(self, user: User) -> User:
        try:
            return await user_replace(user)
        except CASMismatchException as e:
            raise ConcurrentUpdateError(f"User {user.id} changed concurrently") from e

    async def delete(self, user_id: str) -> bool:
        return await user_delete(user_id)


class CouchbaseRevocationList:
    async def revoke(self, token: str, user_id: str, expires_at: datetime) -> None:
        await token_revoke(token, user_id, expires_at)

    async def is_revoked(self, token: str) -> bool:
        return await token_is_revoked(token)
