"""
In-process stores for single-instance dev mode and tests.

Documents are kept as JSON dicts and re-validated on every read, so callers
never share mutable state with the store. Each document carries a CAS
counter with the same conflict semantics as Couchbase. Every call yields to
the event loop once, the way a network round-trip would, so concurrent
placements interleave here as they do against a real cluster.
"""

import asyncio
import itertools
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Generic, Iterator, List, Optional, Tuple, Type

from clients.couchbase import DataT, T, stamp_write
from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.bids import Bid, BidData
from models.entities.couchbase.notifications import Notification, NotificationData
from models.entities.couchbase.users import User, UserData
from models.operations.revoked_tokens import token_key

from . import ConcurrentUpdateError, DuplicateKeyError


async def _round_trip() -> None:
    await asyncio.sleep(0)


class MemoryCollection(Generic[T, DataT]):
    def __init__(self, model: Type[T]):
        self._model = model
        self._docs: Dict[str, Tuple[dict, int]] = {}
        self._cas = itertools.count(1)

    def _load(self, key: str) -> Optional[T]:
        entry = self._docs.get(key)
        if entry is None:
            return None
        doc, cas = entry
        return self._model(id=key, data=doc, cas=cas)

    def insert(self, data: DataT, key: Optional[str] = None, user_id: Optional[str] = None) -> T:
        key = key or str(uuid.uuid4())
        if key in self._docs:
            raise DuplicateKeyError(f"Document {key} already exists")
        stamp_write(data, user_id)
        cas = next(self._cas)
        self._docs[key] = (data.model_dump(mode="json"), cas)
        return self._model(id=key, data=data.model_copy(deep=True), cas=cas)

    def get(self, key: str) -> Optional[T]:
        return self._load(key)

    def replace(self, item: T) -> T:
        entry = self._docs.get(item.id)
        if entry is None:
            raise KeyError(item.id)
        if item.cas is not None and item.cas != entry[1]:
            raise ConcurrentUpdateError(f"Document {item.id} changed concurrently")
        stamp_write(item.data)
        cas = next(self._cas)
        self._docs[item.id] = (item.data.model_dump(mode="json"), cas)
        item.cas = cas
        return item

    def delete(self, key: str) -> bool:
        return self._docs.pop(key, None) is not None

    def scan(self, predicate: Callable[[T], bool] = lambda _: True) -> Iterator[T]:
        for key in list(self._docs):
            item = self._load(key)
            if item is not None and predicate(item):
                yield item


class MemoryAuctionStore:
    def __init__(self) -> None:
        self.collection: MemoryCollection[Auction, AuctionData] = MemoryCollection(Auction)

    async def create(self, dealer_id: str, data: AuctionData) -> Auction:
        await _round_trip()
        data.dealer_id = dealer_id
        data.status = AuctionStatus.PENDING
        return self.collection.insert(data, user_id=dealer_id)

    async def get(self, auction_id: str) -> Optional[Auction]:
        await _round_trip()
        return self.collection.get(auction_id)

    async def replace(self, auction: Auction) -> Auction:
        await _round_trip()
        return self.collection.replace(auction)

    async def search(
        self,
        status: Optional[AuctionStatus] = None,
        dealer_id: Optional[str] = None,
        category_id: Optional[str] = None,
        live_at: Optional[str] = None,
        limit: int = 50,
    ) -> List[Auction]:
        await _round_trip()
        found = self.collection.scan(
            lambda a: (status is None or a.data.status == status)
            and (dealer_id is None or a.data.dealer_id == dealer_id)
            and (category_id is None or a.data.category_id == category_id)
            and (live_at is None or a.data.start_date <= live_at <= a.data.end_date)
        )
        return sorted(found, key=lambda a: a.data.end_date)[:limit]

    async def list_expired(self, now: str) -> List[Auction]:
        await _round_trip()
        found = self.collection.scan(
            lambda a: a.data.status == AuctionStatus.APPROVED and a.data.end_date < now
        )
        return sorted(found, key=lambda a: a.data.end_date)


class MemoryBidLedger:
    def __init__(self) -> None:
        self.collection: MemoryCollection[Bid, BidData] = MemoryCollection(Bid)

    async def append(self, data: BidData, key: str) -> Bid:
        await _round_trip()
        return self.collection.insert(data, key=key, user_id=data.user_id)

    async def highest_bid(self, auction_id: str) -> Optional[Bid]:
        bids = await self.list_for_auction(auction_id, limit=1)
        return bids[0] if bids else None

    async def count_in_window(self, auction_id: str, user_id: str, window_start: str) -> int:
        await _round_trip()
        return sum(
            1 for _ in self.collection.scan(
                lambda b: b.data.auction_id == auction_id
                and b.data.user_id == user_id
                and b.data.timestamp >= window_start
            )
        )

    async def list_for_auction(self, auction_id: str, limit: int = 100) -> List[Bid]:
        await _round_trip()
        bids = self.collection.scan(lambda b: b.data.auction_id == auction_id)
        return sorted(bids, key=lambda b: b.data.bid_amount, reverse=True)[:limit]

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Bid]:
        await _round_trip()
        bids = self.collection.scan(lambda b: b.data.user_id == user_id)
        return sorted(bids, key=lambda b: b.data.timestamp, reverse=True)[:limit]

    def all(self) -> List[Bid]:
        """Every bid in commit order."""
        return list(self.collection.scan())


class MemoryNotificationSink:
    def __init__(self) -> None:
        self.collection: MemoryCollection[Notification, NotificationData] = MemoryCollection(Notification)

    async def create(self, data: NotificationData, key: Optional[str] = None) -> Notification:
        await _round_trip()
        return self.collection.insert(data, key=key)

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        await _round_trip()
        found = self.collection.scan(lambda n: n.data.user_id == user_id)
        return sorted(found, key=lambda n: n.data.timestamp, reverse=True)[:limit]

    async def mark_read(self, notification_id: str, user_id: str) -> Optional[Notification]:
        await _round_trip()
        notification = self.collection.get(notification_id)
        if notification is None or notification.data.user_id != user_id:
            return None
        if not notification.data.read:
            notification.data.read = True
            self.collection.replace(notification)
        return notification

    def all(self) -> List[Notification]:
        return list(self.collection.scan())


class MemoryUserDirectory:
    def __init__(self) -> None:
        self.collection: MemoryCollection[User, UserData] = MemoryCollection(User)

    def add(self, user_id: str, data: UserData) -> User:
        return self.collection.insert(data, key=user_id)

    async def get(self, user_id: str) -> Optional[User]:
        await _round_trip()
        return self.collection.get(user_id)

    async def list_pending(self, limit: int = 100) -> List[User]:
        await _round_trip()
        found = self.collection.scan(lambda u: not u.data.is_approved)
        return sorted(found, key=lambda u: u.data.created_at)[:limit]

    async def replace(self, user: User) -> User:
        await _round_trip()
        return self.collection.replace(user)

    async def delete(self, user_id: str) -> bool:
        await _round_trip()
        return self.collection.delete(user_id)


class MemoryRevocationList:
    def __init__(self) -> None:
        self._revoked: Dict[str, datetime] = {}

    async def revoke(self, token: str, user_id: str, expires_at: datetime) -> None:
        await _round_trip()
        now = datetime.now(timezone.utc)
        for key in [k for k, exp in self._revoked.items() if exp <= now]:
            del self._revoked[key]
        self._revoked[token_key(token)] = expires_at

    async def is_revoked(self, token: str) -> bool:
        await _round_trip()
        key = token_key(token)
        expires_at = self._revoked.get(key)
        if expires_at is None:
            return False
        if expires_at <= datetime.now(timezone.utc):
            del self._revoked[key]
            return False
        return True
