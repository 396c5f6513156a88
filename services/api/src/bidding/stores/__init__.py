"""
Storage seams of the bidding core.

Two backends implement these: ``couchbase`` (production, shared by every
API instance) and ``memory`` (single process, dev mode and tests). Both
return the same entity models and raise the same errors below.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.bids import Bid, BidData
from models.entities.couchbase.notifications import Notification, NotificationData
from models.entities.couchbase.users import User


class ConcurrentUpdateError(Exception):
    """A CAS-guarded write lost against a newer version of the record."""


class DuplicateKeyError(Exception):
    """An insert hit a key that already exists."""


class AuctionStore(Protocol):
    async def create(self, dealer_id: str, data: AuctionData) -> Auction: ...

    async def get(self, auction_id: str) -> Optional[Auction]: ...

    async def replace(self, auction: Auction) -> Auction:
        """Write *auction* back; raises ConcurrentUpdateError if its cas is stale."""
        ...

    async def search(
        self,
        status: Optional[AuctionStatus] = None,
        dealer_id: Optional[str] = None,
        category_id: Optional[str] = None,
        live_at: Optional[str] = None,
        limit: int = 50,
    ) -> List[Auction]:
        """Filter by any combination; *live_at* keeps auctions whose window contains it."""
        ...

    async def list_expired(self, now: str) -> List[Auction]: ...


class BidLedger(Protocol):
    async def append(self, data: BidData, key: str) -> Bid: ...

    async def highest_bid(self, auction_id: str) -> Optional[Bid]: ...

    async def count_in_window(self, auction_id: str, user_id: str, window_start: str) -> int: ...

    async def list_for_auction(self, auction_id: str, limit: int = 100) -> List[Bid]: ...

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Bid]: ...


class NotificationSink(Protocol):
    async def create(self, data: NotificationData, key: Optional[str] = None) -> Notification:
        """Insert; raises DuplicateKeyError when *key* is already taken."""
        ...

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]: ...

    async def mark_read(self, notification_id: str, user_id: str) -> Optional[Notification]: ...


class UserDirectory(Protocol):
    async def get(self, user_id: str) -> Optional[User]: ...

    async def list_pending(self, limit: int = 100) -> List[User]: ...

    async def replace(self, user: User) -> User:
        """Write *user* back; raises ConcurrentUpdateError if its cas is stale."""
        ...

    async def delete(self, user_id: str) -> bool: ...


class RevocationList(Protocol):
    async def revoke(self, token: str, user_id: str, expires_at: datetime) -> None: ...

    async def is_revoked(self, token: str) -> bool: ...


class Broadcaster(Protocol):
    async def emit_to_all(self, event: str, payload: Dict[str, Any]) -> None: ...

    async def emit_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> None: ...
