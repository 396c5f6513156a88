import asyncio
from weakref import WeakValueDictionary


class AuctionLocks:
    """One asyncio.Lock per auction id, dropped once nobody holds or awaits it.

    Serializes placements on the same auction inside this process; bids on
    different auctions never wait on each other.
    """

    def __init__(self) -> None:
        self._locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()

    def for_auction(self, auction_id: str) -> asyncio.Lock:
        lock = self._locks.get(auction_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[auction_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
