"""
Bid placement.

Checks run in a fixed order and the first failure wins: identity, request
shape, auction existence, closed status, rate limit, ordering. The commit
then moves the auction's high-bid head with a CAS update whose mutator
repeats the closed, rate-limit and ordering checks against the committed
record, and only after that appends the bid to the ledger. Two racing bids
therefore cannot both be accepted unless each beats the head the other
committed, and a bidder cannot slip past the window limit by racing
requests, even across API instances. The per-auction lock only keeps CAS
conflicts rare inside one process.

Only the phase before the commit is bounded by the placement timeout. Once
a commit has started the caller gets its outcome, and notifications for a
committed bid are always attempted.
"""

import asyncio
import math
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from models.civil_time import Clock
from models.entities.couchbase.auctions import AuctionData, AuctionStatus
from models.entities.couchbase.bids import Bid, BidData
from models.entities.couchbase.notifications import NotificationData, NotificationType
from utils import log

from .cas import auction_cas_retry
from .errors import (
    AuctionClosed,
    BadRequest,
    BiddingError,
    BidTooLow,
    NotFound,
    RateLimited,
    ServerError,
)
from .identity import Identity, TokenVerifier, resolve_identity
from .locks import AuctionLocks
from .notify import Publisher, inbid_message, outbid_message
from .stores import AuctionStore, BidLedger, NotificationSink, RevocationList, UserDirectory

logger = log.get_logger(__name__)


class PlacedBid(BaseModel):
    bid_id: str
    auction_id: str
    user_id: str
    amount: float
    timestamp: str


@dataclass(frozen=True)
class _Head:
    """The auction's high-bid head as it stood right before a commit."""
    bid_id: Optional[str]
    amount: Optional[float]
    user_id: Optional[str]


def _parse_request(auction_id: Any, bid_amount: Any) -> Tuple[str, float]:
    if auction_id is None or bid_amount is None or auction_id == "" or bid_amount == "":
        raise BadRequest("All fields are required!")
    if not isinstance(auction_id, str) or not auction_id.strip():
        raise BadRequest("Invalid auction ID!")
    if isinstance(bid_amount, bool):
        raise BadRequest("Bid amount must be a number!")
    try:
        amount = float(bid_amount)
    except (TypeError, ValueError):
        raise BadRequest("Bid amount must be a number!")
    if not math.isfinite(amount) or amount <= 0:
        raise BadRequest("Bid amount must be a positive number!")
    return auction_id.strip(), amount


def _log_orphaned_commit(task: asyncio.Task) -> None:
    # The request may have been cancelled and stopped awaiting; surface the outcome here.
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None and not isinstance(exc, BiddingError):
        logger.error(f"Bid commit failed: {exc}")


def _prune_window(d: AuctionData, window_start: str) -> None:
    """Drop per-bidder stamps that fell out of the rate-limit window."""
    kept: Dict[str, List[str]] = {}
    for user_id, stamps in d.recent_bids.items():
        recent = [s for s in stamps if s >= window_start]
        if recent:
            kept[user_id] = recent
    d.recent_bids = kept


class BidPlacementService:
    def __init__(
        self,
        *,
        verifier: TokenVerifier,
        users: UserDirectory,
        revocations: RevocationList,
        auctions: AuctionStore,
        ledger: BidLedger,
        notifications: NotificationSink,
        publisher: Publisher,
        clock: Clock,
        locks: Optional[AuctionLocks] = None,
        max_bids_per_window: int = 3,
        window: timedelta = timedelta(minutes=30),
        timeout_seconds: float = 5.0,
    ):
        self.verifier = verifier
        self.users = users
        self.revocations = revocations
        self.auctions = auctions
        self.ledger = ledger
        self.notifications = notifications
        self.publisher = publisher
        self.clock = clock
        self.locks = locks or AuctionLocks()
        self.max_bids_per_window = max_bids_per_window
        self.window = window
        self.timeout_seconds = timeout_seconds

    async def place_bid(self, credential: Optional[str], auction_id: Any, bid_amount: Any) -> PlacedBid:
        """Validate and commit a bid, then notify. Raises a BiddingError subclass on failure."""
        try:
            identity, key, amount, lock = await asyncio.wait_for(
                self._prepare(credential, auction_id, bid_amount), timeout=self.timeout_seconds
            )
        except BiddingError as e:
            logger.info(f"Bid on auction {auction_id} rejected ({e.status_code}): {e.message}")
            raise
        except asyncio.TimeoutError:
            logger.error(f"Bid placement on auction {auction_id} timed out after {self.timeout_seconds}s")
            raise ServerError()
        except Exception:
            logger.exception(f"Bid placement on auction {auction_id} failed")
            raise ServerError()

        try:
            commit = asyncio.ensure_future(self._commit(key, identity.user_id, amount))
            commit.add_done_callback(_log_orphaned_commit)
            # A cancelled request must not interrupt a commit halfway through.
            bid, previous = await asyncio.shield(commit)
        except BiddingError as e:
            logger.info(f"Bid on auction {key} rejected at commit ({e.status_code}): {e.message}")
            raise
        except Exception:
            logger.exception(f"Bid commit on auction {key} failed")
            raise ServerError()
        finally:
            lock.release()

        logger.info(f"Bid {bid.id} accepted: auction={key} user={identity.user_id} amount={amount}")
        await self._notify(bid, previous)
        self.publisher.to_all(
            "newBid",
            {"auctionId": key, "userId": identity.user_id, "bidAmount": amount},
        )
        return PlacedBid(
            bid_id=bid.id,
            auction_id=key,
            user_id=identity.user_id,
            amount=amount,
            timestamp=bid.data.timestamp,
        )

    async def _prepare(
        self, credential: Optional[str], raw_auction_id: Any, raw_amount: Any
    ) -> Tuple[Identity, str, float, asyncio.Lock]:
        """Run every check before the commit. Returns holding the auction's lock."""
        identity = await resolve_identity(credential, self.verifier, self.revocations, self.users)
        auction_id, amount = _parse_request(raw_auction_id, raw_amount)

        lock = self.locks.for_auction(auction_id)
        await lock.acquire()
        try:
            await self._check(auction_id, identity.user_id, amount)
        except BaseException:
            lock.release()
            raise
        return identity, auction_id, amount, lock

    def _rate_limited(self) -> RateLimited:
        minutes = int(self.window.total_seconds() // 60)
        return RateLimited(
            f"You can only place {self.max_bids_per_window} bids per auction every {minutes} minutes!"
        )

    async def _check(self, auction_id: str, user_id: str, amount: float) -> None:
        auction = await self.auctions.get(auction_id)
        if not auction:
            raise NotFound("Auction not found!")
        if auction.data.status == AuctionStatus.CLOSED:
            raise AuctionClosed()

        window_start = self.clock.stamp_ago(self.window)
        recent = await self.ledger.count_in_window(auction_id, user_id, window_start)
        if recent >= self.max_bids_per_window:
            raise self._rate_limited()

        highest = await self.ledger.highest_bid(auction_id)
        if highest and amount <= highest.data.bid_amount:
            raise BidTooLow()

    async def _commit(self, auction_id: str, user_id: str, amount: float) -> Tuple[Bid, _Head]:
        bid_id = str(uuid.uuid4())
        timestamp = self.clock.stamp()
        window_start = self.clock.stamp_ago(self.window)
        snapshot: Dict[str, _Head] = {}

        def _take_lead(d: AuctionData) -> None:
            if d.status == AuctionStatus.CLOSED:
                raise AuctionClosed()
            _prune_window(d, window_start)
            if len(d.recent_bids.get(user_id, [])) >= self.max_bids_per_window:
                raise self._rate_limited()
            if d.current_high_bid_amount is not None and amount <= d.current_high_bid_amount:
                raise BidTooLow()
            snapshot["previous"] = _Head(
                bid_id=d.current_high_bid_id,
                amount=d.current_high_bid_amount,
                user_id=d.current_high_bidder_id,
            )
            d.current_high_bid_id = bid_id
            d.current_high_bid_amount = amount
            d.current_high_bidder_id = user_id
            d.bid_count += 1
            d.recent_bids.setdefault(user_id, []).append(timestamp)

        await auction_cas_retry(self.auctions, auction_id, _take_lead)
        previous = snapshot["previous"]

        data = BidData(auction_id=auction_id, user_id=user_id, bid_amount=amount, timestamp=timestamp)
        try:
            bid = await self.ledger.append(data, key=bid_id)
        except Exception:
            logger.error(f"Could not record bid {bid_id} on auction {auction_id}, releasing the lead", exc_info=True)
            await self._release_lead(auction_id, data, bid_id, previous)
            raise ServerError()
        return bid, previous

    async def _release_lead(self, auction_id: str, data: BidData, bid_id: str, previous: _Head) -> None:
        def _restore(d: AuctionData) -> None:
            stamps = d.recent_bids.get(data.user_id, [])
            if data.timestamp in stamps:
                stamps.remove(data.timestamp)
            if d.current_high_bid_id != bid_id:
                return
            d.current_high_bid_id = previous.bid_id
            d.current_high_bid_amount = previous.amount
            d.current_high_bidder_id = previous.user_id
            d.bid_count = max(0, d.bid_count - 1)

        try:
            await auction_cas_retry(self.auctions, auction_id, _restore)
        except Exception:
            logger.critical(
                f"Auction {auction_id} head still points at unrecorded bid {bid_id}", exc_info=True
            )

    async def _notify(self, bid: Bid, previous: _Head) -> None:
        d = bid.data
        if previous.user_id and previous.amount is not None and previous.user_id != d.user_id:
            delta = d.bid_amount - previous.amount
            await self._send(
                previous.user_id, d.auction_id, NotificationType.OUTBID,
                outbid_message(delta, d.bid_amount), d.timestamp,
            )
        await self._send(
            d.user_id, d.auction_id, NotificationType.INBID,
            inbid_message(d.bid_amount), d.timestamp,
        )

    async def _send(
        self, user_id: str, auction_id: str, kind: NotificationType, message: str, timestamp: str
    ) -> None:
        data = NotificationData(
            user_id=user_id,
            auction_id=auction_id,
            message=message,
            type=kind,
            timestamp=timestamp,
        )
        try:
            notification = await self.notifications.create(data)
        except Exception as e:
            # The bid is already committed; a lost notification must not undo it.
            logger.warning(f"Failed to write {kind.value} notification for user {user_id}: {e}")
            return
        self.publisher.to_user(
            user_id,
            "notification",
            {"id": notification.id, "auctionId": auction_id, "type": kind.value, "message": message},
        )
