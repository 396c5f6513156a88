"""
Expiry sweep: close approved auctions whose end_date has passed.

Each auction is closed by one CAS update that flips the status through the
transition table and records the winner read from the ledger. The update
only commits if the auction's high-bid head still names that same bid, so
the status flip and the winner come from one consistent state. Closed
auctions are never selected again and a second closer fails the
transition, so the win notification is written once.
"""

import asyncio
from typing import Dict, List, Optional

from models.civil_time import Clock
from models.entities.couchbase.auctions import AuctionData, AuctionStatus, InvalidStatusTransition
from models.entities.couchbase.bids import Bid
from models.entities.couchbase.notifications import (
    NotificationData,
    NotificationType,
    win_notification_key,
)
from utils import log

from .cas import auction_cas_retry
from .notify import Publisher, win_message
from .stores import AuctionStore, BidLedger, DuplicateKeyError, NotificationSink

logger = log.get_logger(__name__)


class _HeadMoved(Exception):
    """The ledger read and the auction head disagree; a bid is mid-commit."""


class ExpirySweepService:
    def __init__(
        self,
        *,
        auctions: AuctionStore,
        ledger: BidLedger,
        notifications: NotificationSink,
        publisher: Publisher,
        clock: Clock,
        max_attempts: int = 3,
    ):
        self.auctions = auctions
        self.ledger = ledger
        self.notifications = notifications
        self.publisher = publisher
        self.clock = clock
        self.max_attempts = max_attempts

    async def sweep_expired_auctions(self) -> int:
        """Close every expired approved auction. Never raises; returns how many closed."""
        now = self.clock.stamp()
        try:
            expired = await self.auctions.list_expired(now)
        except Exception:
            logger.error("Expiry sweep could not list expired auctions", exc_info=True)
            return 0

        if not expired:
            return 0

        results: List[bool] = await asyncio.gather(
            *(self._close_isolated(auction.id, now) for auction in expired)
        )
        closed = sum(results)
        logger.info(f"Expiry sweep closed {closed}/{len(expired)} expired auctions")
        return closed

    async def _close_isolated(self, auction_id: str, now: str) -> bool:
        try:
            return await self.close_auction(auction_id, now)
        except Exception:
            logger.error(f"Failed to close expired auction {auction_id}", exc_info=True)
            return False

    async def close_auction(self, auction_id: str, now: str) -> bool:
        """Close one auction. False if another sweep got there first or the head kept moving."""
        for attempt in range(self.max_attempts):
            highest = await self.ledger.highest_bid(auction_id)
            settled: Dict[str, str] = {}

            def _settle(d: AuctionData) -> None:
                d.transition(AuctionStatus.CLOSED)
                if d.current_high_bid_id != (highest.id if highest else None):
                    raise _HeadMoved()
                d.closed_at = now
                if highest:
                    d.winner_id = highest.data.user_id
                    d.winning_bid_id = highest.id
                    d.winning_amount = highest.data.bid_amount
                settled["item_name"] = d.item_name

            try:
                await auction_cas_retry(self.auctions, auction_id, _settle)
            except InvalidStatusTransition as e:
                logger.debug(f"Skipping auction {auction_id}: {e}")
                return False
            except _HeadMoved:
                await asyncio.sleep(0.05 * (attempt + 1))
                continue

            await self._announce(auction_id, settled["item_name"], highest, now)
            return True

        logger.warning(
            f"Auction {auction_id} head and ledger disagreed {self.max_attempts} times; "
            f"leaving it for the next sweep"
        )
        return False

    async def _announce(self, auction_id: str, item_name: str, winner: Optional[Bid], now: str) -> None:
        if winner is None:
            logger.info(f"Auction {auction_id} closed with no bids")
        else:
            logger.info(
                f"Auction {auction_id} closed: winner={winner.data.user_id} amount={winner.data.bid_amount}"
            )
            message = win_message(item_name, winner.data.bid_amount)
            data = NotificationData(
                user_id=winner.data.user_id,
                auction_id=auction_id,
                message=message,
                type=NotificationType.WIN,
                timestamp=now,
            )
            try:
                notification = await self.notifications.create(data, key=win_notification_key(auction_id))
            except DuplicateKeyError:
                logger.warning(f"Win notification for auction {auction_id} already exists")
            except Exception:
                # The auction is closed and will not be reselected
                logger.error(f"Lost win notification for auction {auction_id}", exc_info=True)
            else:
                self.publisher.to_user(
                    winner.data.user_id,
                    "notification",
                    {"id": notification.id, "auctionId": auction_id, "type": "win", "message": message},
                )

        self.publisher.to_all(
            "auctionClosed",
            {
                "auctionId": auction_id,
                "winnerId": winner.data.user_id if winner else None,
                "winningAmount": winner.data.bid_amount if winner else None,
            },
        )
