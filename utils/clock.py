"""
Time helpers

All timestamps are kept as naive UTC datetimes so values read back from
SQLite compare cleanly with values produced in memory.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
