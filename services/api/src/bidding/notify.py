"""Notification texts and the fire-and-forget broadcast publisher."""

import asyncio
from typing import Any, Dict, Optional, Set

from utils import log

from .stores import Broadcaster

logger = log.get_logger(__name__)

CURRENCY = "₹"


def format_amount(amount: float) -> str:
    """150.0 -> '150', 12.5 -> '12.5'."""
    text = f"{amount:.2f}".rstrip("0").rstrip(".")
    return text or "0"


def outbid_message(delta: float, new_amount: float) -> str:
    return (
        f"You were outbid by {CURRENCY}{format_amount(delta)}. "
        f"The new highest bid is {CURRENCY}{format_amount(new_amount)}."
    )


def inbid_message(amount: float) -> str:
    return f"You are currently the highest bidder with {CURRENCY}{format_amount(amount)}."


def win_message(item_name: str, amount: float) -> str:
    return f'Congratulations! You won the auction for "{item_name}" at {CURRENCY}{format_amount(amount)}.'


class Publisher:
    """Schedules broadcasts without awaiting them.

    Delivery never affects the caller: failures are logged when the task
    finishes. Pending tasks are referenced here until done so the event loop
    does not collect them mid-flight.
    """

    def __init__(self, broadcaster: Optional[Broadcaster]):
        self._broadcaster = broadcaster
        self._pending: Set[asyncio.Task] = set()

    def to_all(self, event: str, payload: Dict[str, Any]) -> None:
        if self._broadcaster is not None:
            self._spawn(self._broadcaster.emit_to_all(event, payload), event)

    def to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        if self._broadcaster is not None:
            self._spawn(self._broadcaster.emit_to_user(user_id, event, payload), event)

    async def drain(self) -> None:
        """Wait for in-flight broadcasts (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _spawn(self, coro, event: str) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.warning(f"No running event loop, dropped '{event}' broadcast")
            return
        self._pending.add(task)
        task.add_done_callback(lambda t: self._finished(t, event))

    def _finished(self, task: asyncio.Task, event: str) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Broadcast of '{event}' failed: {exc}")
