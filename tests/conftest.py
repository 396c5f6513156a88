import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple

# Route tests import main, which validates configuration at import time
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")

import jwt
import pytest

from bidding.cas import auction_cas_retry
from bidding.context import BiddingContext, build_memory_context
from conf import BiddingConf
from models.civil_time import Clock
from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.users import UserData
from utils.auth import AuthClient, AuthClientConfig

SECRET = os.environ["AUTH_JWT_SECRET"]

BIDDERS = ("alice", "bob", "carol")
DEALER = "dave"
ADMIN = "root"


class ManualClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, start: str = "2025-03-01 12:00:00", timezone: str = "Asia/Kolkata"):
        super().__init__(timezone)
        self._now = self.parse(start)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> None:
        self._now += timedelta(**kwargs)


class RecordingBroadcaster:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    async def emit_to_all(self, event: str, payload: Dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("socket gone")
        self.events.append(("*", event, payload))

    async def emit_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("socket gone")
        self.events.append((user_id, event, payload))

    def named(self, event: str) -> List[Tuple[str, Dict[str, Any]]]:
        return [(target, payload) for target, name, payload in self.events if name == event]


def mint_token(user_id: str, secret: str = SECRET, lifetime: timedelta = timedelta(hours=1)) -> str:
    exp = datetime.now(timezone.utc) + lifetime
    return jwt.encode({"sub": user_id, "exp": exp}, secret, algorithm="HS256")


def seed_users(ctx: BiddingContext) -> None:
    for name in BIDDERS:
        ctx.users.add(name, UserData(full_name=name.title(), email=f"{name}@example.com", role="bidder", is_approved=True))
    ctx.users.add(DEALER, UserData(full_name="Dave", email="dave@example.com", role="dealer", is_approved=True))
    ctx.users.add(ADMIN, UserData(full_name="Root", email="root@example.com", role="admin", is_approved=True))


async def open_auction(
    ctx: BiddingContext,
    ends_in: timedelta = timedelta(hours=1),
    base_price: float = 50.0,
    item_name: str = "Vintage Clock",
    approve: bool = True,
) -> Auction:
    now = ctx.clock.now()
    data = AuctionData(
        item_name=item_name,
        base_price=base_price,
        dealer_id=DEALER,
        category_id="antiques",
        start_date=ctx.clock.format(now - timedelta(hours=1)),
        end_date=ctx.clock.format(now + ends_in),
    )
    auction = await ctx.auctions.create(DEALER, data)
    if approve:
        auction = await auction_cas_retry(ctx.auctions, auction.id, lambda d: d.transition(AuctionStatus.APPROVED))
    return auction


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def bidding_conf() -> BiddingConf:
    return BiddingConf(
        timezone="Asia/Kolkata",
        rate_limit_max_bids=3,
        rate_limit_window_minutes=30,
        placement_timeout_seconds=5,
        sweep_interval_seconds=60,
    )


@pytest.fixture
def verifier() -> AuthClient:
    return AuthClient(AuthClientConfig(secret=SECRET))


@pytest.fixture
def ctx(bidding_conf, verifier, broadcaster, clock) -> BiddingContext:
    context = build_memory_context(bidding_conf, verifier, broadcaster, clock=clock)
    seed_users(context)
    return context


@pytest.fixture
def tokens() -> Dict[str, str]:
    return {name: mint_token(name) for name in (*BIDDERS, DEALER, ADMIN)}
