"""
Civil timestamps: ``YYYY-MM-DD HH:MM:SS`` strings in one fixed timezone.

Auctions, bids and notifications persist their times in this form. Strings
in this format sort chronologically, so window counts and expiry selection
compare them directly, both in memory and in N1QL.
"""

from datetime import datetime, timedelta
from typing import Annotated
from zoneinfo import ZoneInfo

from pydantic import AfterValidator

CIVIL_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_TIMEZONE = "Asia/Kolkata"


def _check_civil(value: str) -> str:
    try:
        datetime.strptime(value, CIVIL_FORMAT)
    except ValueError:
        raise ValueError(f"Expected a 'YYYY-MM-DD HH:MM:SS' timestamp, got {value!r}")
    return value


CivilTimestamp = Annotated[str, AfterValidator(_check_civil)]


class Clock:
    """Current time in the configured civil timezone, second precision."""

    def __init__(self, timezone: str = DEFAULT_TIMEZONE):
        self.tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz).replace(microsecond=0)

    def stamp(self) -> str:
        return self.format(self.now())

    def stamp_ago(self, delta: timedelta) -> str:
        return self.format(self.now() - delta)

    def format(self, value: datetime) -> str:
        if value.tzinfo is not None:
            value = value.astimezone(self.tz)
        return value.strftime(CIVIL_FORMAT)

    def parse(self, value: str) -> datetime:
        return datetime.strptime(value, CIVIL_FORMAT).replace(tzinfo=self.tz)
