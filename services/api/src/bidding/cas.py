"""CAS-guarded read-modify-write of auction records."""

import asyncio
from typing import Callable

from models.entities.couchbase.auctions import Auction, AuctionData
from utils import log

from .errors import NotFound, ServerError
from .stores import AuctionStore, ConcurrentUpdateError

logger = log.get_logger(__name__)


async def auction_cas_retry(
    store: AuctionStore,
    auction_id: str,
    mutator: Callable[[AuctionData], None],
    max_retries: int = 5,
) -> Auction:
    """Read-modify-write an auction with CAS-guarded retry.

    *mutator* receives ``AuctionData`` freshly read on every attempt and
    mutates it in place, raising to abort. Because it re-runs against the
    latest committed version, any check it performs holds at commit time.
    On ``ConcurrentUpdateError`` the helper re-reads and retries with
    exponential backoff (10 ms, 20 ms, 40 ms, ...).
    """
    backoff_ms = 10
    for attempt in range(max_retries + 1):
        auction = await store.get(auction_id)
        if not auction:
            raise NotFound("Auction not found!")

        mutator(auction.data)

        try:
            return await store.replace(auction)
        except ConcurrentUpdateError:
            if attempt == max_retries:
                break
            logger.debug(f"CAS conflict on auction {auction_id}, attempt {attempt + 1}")
            await asyncio.sleep(backoff_ms / 1000)
            backoff_ms *= 2

    logger.warning(f"Gave up updating auction {auction_id} after {max_retries + 1} CAS conflicts")
    raise ServerError("Concurrent update conflict, please retry")
