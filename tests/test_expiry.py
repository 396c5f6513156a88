"""Expiry sweep: closing, settlement and exactly-once win notifications."""

import asyncio
from datetime import timedelta

from bidding.expiry import ExpirySweepService
from models.entities.couchbase.auctions import AuctionStatus
from models.entities.couchbase.notifications import NotificationType, win_notification_key

from conftest import open_auction


def _wins(ctx):
    return [n for n in ctx.notifications.all() if n.data.type == NotificationType.WIN]


def _sweeper(ctx, **overrides) -> ExpirySweepService:
    kwargs = dict(
        auctions=ctx.auctions,
        ledger=ctx.ledger,
        notifications=ctx.notifications,
        publisher=ctx.publisher,
        clock=ctx.clock,
    )
    kwargs.update(overrides)
    return ExpirySweepService(**kwargs)


async def test_sweep_closes_expired_auction_and_settles_winner(ctx, tokens, clock, broadcaster):
    auction = await open_auction(ctx, item_name="Vintage Clock")
    await ctx.placement.place_bid(tokens["alice"], auction.id, 100)
    winning = await ctx.placement.place_bid(tokens["bob"], auction.id, 150)

    clock.advance(hours=2)
    closed = await ctx.sweeper.sweep_expired_auctions()
    await ctx.publisher.drain()

    assert closed == 1
    stored = await ctx.auctions.get(auction.id)
    assert stored.data.status == AuctionStatus.CLOSED
    assert stored.data.winner_id == "bob"
    assert stored.data.winning_bid_id == winning.bid_id
    assert stored.data.winning_amount == 150
    assert stored.data.closed_at == "2025-03-01 14:00:00"

    wins = _wins(ctx)
    assert len(wins) == 1
    assert wins[0].id == win_notification_key(auction.id)
    assert wins[0].data.user_id == "bob"
    assert wins[0].data.message == 'Congratulations! You won the auction for "Vintage Clock" at ₹150.'

    assert broadcaster.named("auctionClosed") == [
        ("*", {"auctionId": auction.id, "winnerId": "bob", "winningAmount": 150}),
    ]
    assert ("bob", "notification") in [(t, e) for t, e, _ in broadcaster.events]


async def test_repeated_sweeps_write_one_win(ctx, tokens, clock):
    auction = await open_auction(ctx)
    await ctx.placement.place_bid(tokens["alice"], auction.id, 100)

    clock.advance(hours=2)
    assert await ctx.sweeper.sweep_expired_auctions() == 1
    assert await ctx.sweeper.sweep_expired_auctions() == 0
    clock.advance(minutes=1)
    assert await ctx.sweeper.sweep_expired_auctions() == 0

    assert len(_wins(ctx)) == 1


async def test_concurrent_sweeps_close_once(ctx, tokens, clock):
    auction = await open_auction(ctx)
    await ctx.placement.place_bid(tokens["alice"], auction.id, 100)
    other = _sweeper(ctx)

    clock.advance(hours=2)
    results = await asyncio.gather(
        ctx.sweeper.sweep_expired_auctions(),
        other.sweep_expired_auctions(),
    )

    assert sum(results) == 1
    assert len(_wins(ctx)) == 1


async def test_closing_twice_is_refused(ctx, tokens, clock):
    auction = await open_auction(ctx)
    await ctx.placement.place_bid(tokens["alice"], auction.id, 100)
    clock.advance(hours=2)
    now = clock.stamp()

    assert await ctx.sweeper.close_auction(auction.id, now) is True
    assert await ctx.sweeper.close_auction(auction.id, now) is False
    assert len(_wins(ctx)) == 1


async def test_no_bid_expiry_closes_without_notifications(ctx, clock, broadcaster):
    auction = await open_auction(ctx)

    clock.advance(hours=2)
    assert await ctx.sweeper.sweep_expired_auctions() == 1
    await ctx.publisher.drain()

    stored = await ctx.auctions.get(auction.id)
    assert stored.data.status == AuctionStatus.CLOSED
    assert stored.data.winner_id is None
    assert stored.data.winning_amount is None
    assert ctx.notifications.all() == []
    assert broadcaster.named("auctionClosed") == [
        ("*", {"auctionId": auction.id, "winnerId": None, "winningAmount": None}),
    ]


async def test_only_expired_approved_auctions_are_swept(ctx, clock):
    running = await open_auction(ctx, ends_in=timedelta(hours=5))
    pending = await open_auction(ctx, approve=False)
    expiring = await open_auction(ctx, ends_in=timedelta(minutes=30))

    clock.advance(hours=1)
    assert await ctx.sweeper.sweep_expired_auctions() == 1

    assert (await ctx.auctions.get(expiring.id)).data.status == AuctionStatus.CLOSED
    assert (await ctx.auctions.get(running.id)).data.status == AuctionStatus.APPROVED
    assert (await ctx.auctions.get(pending.id)).data.status == AuctionStatus.PENDING


async def test_auction_ending_now_is_not_yet_expired(ctx, clock):
    auction = await open_auction(ctx, ends_in=timedelta(minutes=10))

    clock.advance(minutes=10)
    assert await ctx.sweeper.sweep_expired_auctions() == 0

    clock.advance(seconds=1)
    assert await ctx.sweeper.sweep_expired_auctions() == 1
    assert (await ctx.auctions.get(auction.id)).data.status == AuctionStatus.CLOSED


class _FlakyStore:
    """Fails every write to one auction."""

    def __init__(self, inner, broken_id):
        self.inner = inner
        self.broken_id = broken_id

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def replace(self, auction):
        if auction.id == self.broken_id:
            raise RuntimeError("write timed out")
        return await self.inner.replace(auction)


async def test_one_failing_auction_does_not_stop_the_sweep(ctx, tokens, clock):
    broken = await open_auction(ctx, item_name="Broken")
    healthy = await open_auction(ctx, item_name="Healthy")
    await ctx.placement.place_bid(tokens["alice"], healthy.id, 100)

    sweeper = _sweeper(ctx, auctions=_FlakyStore(ctx.auctions, broken.id))
    clock.advance(hours=2)

    assert await sweeper.sweep_expired_auctions() == 1
    assert (await ctx.auctions.get(healthy.id)).data.status == AuctionStatus.CLOSED
    assert (await ctx.auctions.get(broken.id)).data.status == AuctionStatus.APPROVED

    # Retried on the next run once the store recovers
    assert await ctx.sweeper.sweep_expired_auctions() == 1
    assert (await ctx.auctions.get(broken.id)).data.status == AuctionStatus.CLOSED


class _LaggingLedger:
    """The first highest-bid read misses the latest commit."""

    def __init__(self, inner):
        self.inner = inner
        self.reads = 0

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def highest_bid(self, auction_id):
        self.reads += 1
        if self.reads == 1:
            return None
        return await self.inner.highest_bid(auction_id)


async def test_winner_comes_from_the_committed_head(ctx, tokens, clock):
    auction = await open_auction(ctx)
    await ctx.placement.place_bid(tokens["alice"], auction.id, 100)
    ledger = _LaggingLedger(ctx.ledger)
    sweeper = _sweeper(ctx, ledger=ledger)

    clock.advance(hours=2)
    assert await sweeper.sweep_expired_auctions() == 1

    stored = await ctx.auctions.get(auction.id)
    assert stored.data.winner_id == "alice"
    assert ledger.reads == 2
    assert len(_wins(ctx)) == 1


class _BrokenListing:
    async def list_expired(self, now):
        raise RuntimeError("query service unavailable")


async def test_sweep_never_raises(ctx):
    sweeper = _sweeper(ctx, auctions=_BrokenListing())
    assert await sweeper.sweep_expired_auctions() == 0
