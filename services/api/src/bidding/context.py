"""Wiring of the bidding core for one API process."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from conf import BiddingConf
from models.civil_time import Clock

from .expiry import ExpirySweepService
from .identity import TokenVerifier
from .locks import AuctionLocks
from .notify import Publisher
from .placement import BidPlacementService
from .stores import (
    AuctionStore,
    BidLedger,
    Broadcaster,
    NotificationSink,
    RevocationList,
    UserDirectory,
)


@dataclass
class BiddingContext:
    verifier: TokenVerifier
    auctions: AuctionStore
    ledger: BidLedger
    notifications: NotificationSink
    users: UserDirectory
    revocations: RevocationList
    publisher: Publisher
    clock: Clock
    placement: BidPlacementService
    sweeper: ExpirySweepService


def build_context(
    *,
    bidding_conf: BiddingConf,
    verifier: TokenVerifier,
    auctions: AuctionStore,
    ledger: BidLedger,
    notifications: NotificationSink,
    users: UserDirectory,
    revocations: RevocationList,
    broadcaster: Optional[Broadcaster] = None,
    clock: Optional[Clock] = None,
) -> BiddingContext:
    clock = clock or Clock(bidding_conf.timezone)
    publisher = Publisher(broadcaster)
    placement = BidPlacementService(
        verifier=verifier,
        users=users,
        revocations=revocations,
        auctions=auctions,
        ledger=ledger,
        notifications=notifications,
        publisher=publisher,
        clock=clock,
        locks=AuctionLocks(),
        max_bids_per_window=bidding_conf.rate_limit_max_bids,
        window=timedelta(minutes=bidding_conf.rate_limit_window_minutes),
        timeout_seconds=bidding_conf.placement_timeout_seconds,
    )
    sweeper = ExpirySweepService(
        auctions=auctions,
        ledger=ledger,
        notifications=notifications,
        publisher=publisher,
        clock=clock,
    )
    return BiddingContext(
        verifier=verifier,
        auctions=auctions,
        ledger=ledger,
        notifications=notifications,
        users=users,
        revocations=revocations,
        publisher=publisher,
        clock=clock,
        placement=placement,
        sweeper=sweeper,
    )


def build_couchbase_context(
    bidding_conf: BiddingConf,
    verifier: TokenVerifier,
    broadcaster: Optional[Broadcaster] = None,
) -> BiddingContext:
    from .stores.couchbase import (
        CouchbaseAuctionStore,
        CouchbaseBidLedger,
        CouchbaseNotificationSink,
        CouchbaseRevocationList,
        CouchbaseUserDirectory,
    )

    return build_context(
        bidding_conf=bidding_conf,
        verifier=verifier,
        auctions=CouchbaseAuctionStore(),
        ledger=CouchbaseBidLedger(),
        notifications=CouchbaseNotificationSink(),
        users=CouchbaseUserDirectory(),
        revocations=CouchbaseRevocationList(),
        broadcaster=broadcaster,
    )


def build_memory_context(
    bidding_conf: BiddingConf,
    verifier: TokenVerifier,
    broadcaster: Optional[Broadcaster] = None,
    clock: Optional[Clock] = None,
) -> BiddingContext:
    from .stores.memory import (
        MemoryAuctionStore,
        MemoryBidLedger,
        MemoryNotificationSink,
        MemoryRevocationList,
        MemoryUserDirectory,
    )

    return build_context(
        bidding_conf=bidding_conf,
        verifier=verifier,
        auctions=MemoryAuctionStore(),
        ledger=MemoryBidLedger(),
        notifications=MemoryNotificationSink(),
        users=MemoryUserDirectory(),
        revocations=MemoryRevocationList(),
        broadcaster=broadcaster,
        clock=clock,
    )
