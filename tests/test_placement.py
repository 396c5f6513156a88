"""Bid placement: validation order, ordering, rate limiting and notifications."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from bidding.cas import auction_cas_retry
from bidding.errors import (
    AuctionClosed,
    BadRequest,
    BidTooLow,
    Forbidden,
    NotFound,
    RateLimited,
    ServerError,
    Unauthorized,
)
from bidding.notify import Publisher
from bidding.placement import BidPlacementService
from models.entities.couchbase.auctions import AuctionStatus
from models.entities.couchbase.notifications import NotificationType
from models.entities.couchbase.users import UserData

from conftest import RecordingBroadcaster, mint_token, open_auction


def _service(ctx, **overrides) -> BidPlacementService:
    kwargs = dict(
        verifier=ctx.verifier,
        users=ctx.users,
        revocations=ctx.revocations,
        auctions=ctx.auctions,
        ledger=ctx.ledger,
        notifications=ctx.notifications,
        publisher=ctx.publisher,
        clock=ctx.clock,
    )
    kwargs.update(overrides)
    return BidPlacementService(**kwargs)


async def _close(ctx, auction_id):
    await auction_cas_retry(ctx.auctions, auction_id, lambda d: d.transition(AuctionStatus.CLOSED))


def _notifications_for(ctx, user_id, kind=None):
    return [
        n for n in ctx.notifications.all()
        if n.data.user_id == user_id and (kind is None or n.data.type == kind)
    ]


async def test_first_bid_is_accepted(ctx, tokens):
    auction = await open_auction(ctx)

    placed = await ctx.placement.place_bid(tokens["alice"], auction.id, 100)

    assert placed.amount == 100
    assert placed.user_id == "alice"
    assert placed.timestamp == "2025-03-01 12:00:00"

    stored = await ctx.auctions.get(auction.id)
    assert stored.data.current_high_bid_id == placed.bid_id
    assert stored.data.current_high_bid_amount == 100
    assert stored.data.current_high_bidder_id == "alice"
    assert stored.data.bid_count == 1


async def test_numeric_strings_are_accepted(ctx, tokens):
    auction = await open_auction(ctx)
    placed = await ctx.placement.place_bid(tokens["alice"], auction.id, "125.5")
    assert placed.amount == 125.5


async def test_highest_bid_is_monotonic(ctx, tokens):
    auction = await open_auction(ctx)
    await ctx.placement.place_bid(tokens["alice"], auction.id, 100)
    await ctx.placement.place_bid(tokens["bob"], auction.id, 150)

    with pytest.raises(BidTooLow) as exc:
        await ctx.placement.place_bid(tokens["carol"], auction.id, 150)
    assert exc.value.message == "Bid must be higher than the current highest bid!"

    with pytest.raises(BidTooLow):
        await ctx.placement.place_bid(tokens["carol"], auction.id, 120)

    amounts = [b.data.bid_amount for b in ctx.ledger.all()]
    assert amounts == [100, 150]
    assert all(a < b for a, b in zip(amounts, amounts[1:]))


async def test_rate_limit_window_slides(ctx, tokens, clock):
    auction = await open_auction(ctx, ends_in=timedelta(hours=3))
    t = tokens["alice"]

    await ctx.placement.place_bid(t, auction.id, 100)
    clock.advance(minutes=1)
    await ctx.placement.place_bid(t, auction.id, 110)
    clock.advance(minutes=1)
    await ctx.placement.place_bid(t, auction.id, 120)

    clock.advance(minutes=1)
    with pytest.raises(RateLimited):
        await ctx.placement.place_bid(t, auction.id, 130)

    # 31 minutes after the first bid only two bids remain in the window
    clock.advance(minutes=28)
    placed = await ctx.placement.place_bid(t, auction.id, 130)
    assert placed.amount == 130


async def test_rate_limit_is_per_auction(ctx, tokens):
    first = await open_auction(ctx)
    second = await open_auction(ctx, item_name="Brass Lamp")

    for amount in (100, 110, 120):
        await ctx.placement.place_bid(tokens["alice"], first.id, amount)

    placed = await ctx.placement.place_bid(tokens["alice"], second.id, 100)
    assert placed.auction_id == second.id


async def test_rejected_bids_do_not_count_toward_rate_limit(ctx, tokens):
    auction = await open_auction(ctx)
    await ctx.placement.place_bid(tokens["bob"], auction.id, 500)

    for _ in range(4):
        with pytest.raises(BidTooLow):
            await ctx.placement.place_bid(tokens["alice"], auction.id, 100)

    placed = await ctx.placement.place_bid(tokens["alice"], auction.id, 600)
    assert placed.amount == 600


async def test_closed_auction_rejects_bids(ctx, tokens):
    auction = await open_auction(ctx)
    await ctx.placement.place_bid(tokens["alice"], auction.id, 100)
    await _close(ctx, auction.id)

    with pytest.raises(AuctionClosed) as exc:
        await ctx.placement.place_bid(tokens["bob"], auction.id, 1000)
    assert exc.value.message == "Bidding is closed for this auction!"
    assert len(ctx.ledger.all()) == 1


async def test_only_closed_status_blocks_bidding(ctx, tokens, clock):
    pending = await open_auction(ctx, approve=False)
    placed = await ctx.placement.place_bid(tokens["alice"], pending.id, 100)
    assert placed.amount == 100

    # Past its end date but not yet swept
    expired = await open_auction(ctx, ends_in=timedelta(minutes=5))
    clock.advance(minutes=10)
    placed = await ctx.placement.place_bid(tokens["alice"], expired.id, 100)
    assert placed.amount == 100


async def test_validation_order(ctx, tokens):
    auction = await open_auction(ctx)

    # Identity comes before request shape
    with pytest.raises(Unauthorized):
        await ctx.placement.place_bid(None, auction.id, None)

    # Request shape comes before existence
    with pytest.raises(BadRequest):
        await ctx.placement.place_bid(tokens["alice"], "no-such-auction", None)

    with pytest.raises(NotFound):
        await ctx.placement.place_bid(tokens["alice"], "no-such-auction", 100)

    # Closed comes before rate limit and ordering
    for amount in (100, 110, 120):
        await ctx.placement.place_bid(tokens["alice"], auction.id, amount)
    await _close(ctx, auction.id)
    with pytest.raises(AuctionClosed):
        await ctx.placement.place_bid(tokens["alice"], auction.id, 1)


async def test_rate_limit_checked_before_ordering(ctx, tokens):
    auction = await open_auction(ctx)
    for amount in (100, 110, 120):
        await ctx.placement.place_bid(tokens["alice"], auction.id, amount)

    with pytest.raises(RateLimited):
        await ctx.placement.place_bid(tokens["alice"], auction.id, 50)


@pytest.mark.parametrize(
    "auction_id, amount",
    [
        (None, 100),
        ("", 100),
        ("x", None),
        ("x", ""),
        ("x", "abc"),
        ("x", -5),
        ("x", 0),
        ("x", True),
        ("x", float("nan")),
        (42, 100),
    ],
)
async def test_malformed_requests_are_bad_requests(ctx, tokens, auction_id, amount):
    with pytest.raises(BadRequest):
        await ctx.placement.place_bid(tokens["alice"], auction_id, amount)


async def test_invalid_token_is_unauthorized(ctx):
    auction = await open_auction(ctx)
    with pytest.raises(Unauthorized):
        await ctx.placement.place_bid("not-a-jwt", auction.id, 100)
    with pytest.raises(Unauthorized):
        await ctx.placement.place_bid(mint_token("alice", secret="another-secret-key-that-is-long-enough"), auction.id, 100)
    with pytest.raises(Unauthorized):
        await ctx.placement.place_bid(mint_token("alice", lifetime=timedelta(hours=-1)), auction.id, 100)


async def test_unknown_user_is_unauthorized(ctx):
    auction = await open_auction(ctx)
    with pytest.raises(Unauthorized):
        await ctx.placement.place_bid(mint_token("mallory"), auction.id, 100)


async def test_revoked_token_is_forbidden(ctx, tokens):
    auction = await open_auction(ctx)
    await ctx.revocations.revoke(tokens["alice"], "alice", datetime.now(timezone.utc) + timedelta(hours=1))

    with pytest.raises(Forbidden):
        await ctx.placement.place_bid(tokens["alice"], auction.id, 100)

    # A fresh token for the same user still works
    placed = await ctx.placement.place_bid(mint_token("alice", lifetime=timedelta(minutes=59)), auction.id, 100)
    assert placed.user_id == "alice"


async def test_unapproved_account_is_forbidden(ctx):
    auction = await open_auction(ctx)
    ctx.users.add("erin", UserData(full_name="Erin", email="erin@example.com", role="bidder"))

    with pytest.raises(Forbidden) as exc:
        await ctx.placement.place_bid(mint_token("erin"), auction.id, 100)
    assert exc.value.message == "Admin approval required. Please wait for approval."
    assert ctx.ledger.all() == []


async def test_outbid_notification_carries_delta(ctx, tokens):
    auction = await open_auction(ctx)
    await ctx.placement.place_bid(tokens["alice"], auction.id, 100)
    await ctx.placement.place_bid(tokens["bob"], auction.id, 150)

    outbid = _notifications_for(ctx, "alice", NotificationType.OUTBID)
    assert len(outbid) == 1
    assert outbid[0].data.message == "You were outbid by ₹50. The new highest bid is ₹150."
    assert outbid[0].data.auction_id == auction.id
    assert outbid[0].data.read is False

    inbid = _notifications_for(ctx, "bob", NotificationType.INBID)
    assert [n.data.message for n in inbid] == ["You are currently the highest bidder with ₹150."]


async def test_no_outbid_when_raising_own_bid(ctx, tokens):
    auction = await open_auction(ctx)
    await ctx.placement.place_bid(tokens["alice"], auction.id, 100)
    await ctx.placement.place_bid(tokens["alice"], auction.id, 200)

    assert _notifications_for(ctx, "alice", NotificationType.OUTBID) == []
    assert len(_notifications_for(ctx, "alice", NotificationType.INBID)) == 2


async def test_broadcasts_new_bid_and_notifications(ctx, tokens, broadcaster):
    auction = await open_auction(ctx)
    await ctx.placement.place_bid(tokens["alice"], auction.id, 100)
    await ctx.placement.place_bid(tokens["bob"], auction.id, 150)
    await ctx.publisher.drain()

    assert broadcaster.named("newBid") == [
        ("*", {"auctionId": auction.id, "userId": "alice", "bidAmount": 100}),
        ("*", {"auctionId": auction.id, "userId": "bob", "bidAmount": 150}),
    ]
    targets = [target for target, _ in broadcaster.named("notification")]
    assert targets.count("alice") == 2
    assert targets.count("bob") == 1


async def test_broadcast_failure_does_not_fail_the_bid(ctx, tokens):
    failing = Publisher(RecordingBroadcaster(fail=True))
    service = _service(ctx, publisher=failing)
    auction = await open_auction(ctx)

    placed = await service.place_bid(tokens["alice"], auction.id, 100)
    await failing.drain()

    assert placed.amount == 100
    assert len(ctx.ledger.all()) == 1


class _BrokenSink:
    async def create(self, data, key=None):
        raise RuntimeError("notification store down")


async def test_notification_failure_does_not_fail_the_bid(ctx, tokens):
    service = _service(ctx, notifications=_BrokenSink())
    auction = await open_auction(ctx)

    await service.place_bid(tokens["alice"], auction.id, 100)
    placed = await service.place_bid(tokens["bob"], auction.id, 150)

    assert placed.amount == 150
    assert [b.data.bid_amount for b in ctx.ledger.all()] == [100, 150]


class _SlowLedger:
    def __init__(self, inner):
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def count_in_window(self, *args):
        await asyncio.sleep(1)
        return await self.inner.count_in_window(*args)


async def test_timeout_is_a_server_error(ctx, tokens):
    service = _service(ctx, ledger=_SlowLedger(ctx.ledger), timeout_seconds=0.05)
    auction = await open_auction(ctx)

    with pytest.raises(ServerError) as exc:
        await service.place_bid(tokens["alice"], auction.id, 100)
    assert exc.value.status_code == 500
    assert ctx.ledger.all() == []

    # The timed-out attempt let go of the auction lock
    service.ledger = ctx.ledger
    placed = await service.place_bid(tokens["alice"], auction.id, 100)
    assert placed.amount == 100


class _FailingAppendLedger:
    def __init__(self, inner):
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def append(self, data, key):
        raise RuntimeError("disk full")


async def test_failed_append_releases_the_lead(ctx, tokens):
    auction = await open_auction(ctx)
    await ctx.placement.place_bid(tokens["alice"], auction.id, 100)
    before = (await ctx.auctions.get(auction.id)).data

    service = _service(ctx, ledger=_FailingAppendLedger(ctx.ledger))
    with pytest.raises(ServerError) as exc:
        await service.place_bid(tokens["bob"], auction.id, 150)
    assert exc.value.message == "Server error"

    after = (await ctx.auctions.get(auction.id)).data
    assert after.current_high_bid_id == before.current_high_bid_id
    assert after.current_high_bid_amount == 100
    assert after.current_high_bidder_id == "alice"
    assert after.bid_count == 1
    assert after.recent_bids == {"alice": ["2025-03-01 12:00:00"]}
    assert _notifications_for(ctx, "alice", NotificationType.OUTBID) == []


class _SlowSink:
    def __init__(self, inner, delay):
        self.inner = inner
        self.delay = delay

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def create(self, data, key=None):
        await asyncio.sleep(self.delay)
        return await self.inner.create(data, key=key)


async def test_slow_notifications_still_succeed_after_commit(ctx, tokens):
    service = _service(ctx, notifications=_SlowSink(ctx.notifications, 0.3), timeout_seconds=0.1)
    auction = await open_auction(ctx)

    await service.place_bid(tokens["alice"], auction.id, 100)
    placed = await service.place_bid(tokens["bob"], auction.id, 150)

    assert placed.amount == 150
    assert [b.data.bid_amount for b in ctx.ledger.all()] == [100, 150]
    assert len(_notifications_for(ctx, "alice", NotificationType.OUTBID)) == 1
    assert len(_notifications_for(ctx, "bob", NotificationType.INBID)) == 1


class _SlowAppendLedger:
    def __init__(self, inner):
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def append(self, data, key):
        await asyncio.sleep(0.2)
        return await self.inner.append(data, key=key)


async def test_started_commit_is_not_cut_short_by_timeout(ctx, tokens):
    service = _service(ctx, ledger=_SlowAppendLedger(ctx.ledger), timeout_seconds=0.05)
    auction = await open_auction(ctx)

    placed = await service.place_bid(tokens["alice"], auction.id, 100)

    assert placed.amount == 100
    assert [b.data.bid_amount for b in ctx.ledger.all()] == [100]
    stored = await ctx.auctions.get(auction.id)
    assert stored.data.current_high_bid_id == placed.bid_id
