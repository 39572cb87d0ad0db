"""UTC time helpers.

Timestamps are stored naive in UTC so that PostgreSQL ``timestamp`` columns
and SQLite compare the same way.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_month(moment: datetime) -> datetime:
    """UTC midnight on day 1 of ``moment``'s month."""
    moment = as_naive_utc(moment)
    return datetime(moment.year, moment.month, 1)


def as_naive_utc(moment: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)
