"""APScheduler setup for the periodic auction expiry sweep."""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from utils import log

from .expiry import ExpirySweepService

logger = log.get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


async def expiry_sweep_job(sweeper: ExpirySweepService):
    """Close every approved auction whose end date has passed."""
    try:
        closed = await sweeper.sweep_expired_auctions()
    except Exception as e:
        logger.error(f"Auction expiry sweep failed: {e}", exc_info=True)
        return
    if closed:
        logger.info(f"Auction expiry sweep closed {closed} auctions")


def init_scheduler(sweeper: ExpirySweepService, interval_seconds: int = 60) -> AsyncIOScheduler:
    """Start the APScheduler with the expiry sweep job."""
    global _scheduler
    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        expiry_sweep_job,
        trigger=IntervalTrigger(seconds=interval_seconds),
        args=[sweeper],
        id="auction_expiry_sweep",
        name="Auction Expiry Sweep",
        replace_existing=True,
        # A slow sweep must not overlap the next one
        max_instances=1,
        coalesce=True,
    )
    _scheduler.start()
    logger.info(f"APScheduler started with auction expiry sweep every {interval_seconds}s")
    return _scheduler


def shutdown_scheduler():
    """Gracefully shut down the scheduler."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("APScheduler shut down")


def scheduler_running() -> bool:
    return bool(_scheduler and _scheduler.running)
