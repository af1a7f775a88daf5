"""
Module: clock.py
Description: Injectable time source and timestamp helpers.

All scheduling arithmetic reads "now" from a Clock so backoff
sequences can be exercised deterministically.

Key Components:
- Clock: protocol for anything exposing now()
- SystemClock: wall-clock implementation (UTC)
- format_timestamp() / parse_timestamp(): fixed-width UTC strings
  that sort lexicographically in chronological order

Dependencies: datetime, typing
Author: Push Queue Team
"""

from datetime import datetime, timezone
from typing import Protocol

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class Clock(Protocol):
    """Source of the current UTC time."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Clock backed by the system wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """
    Format a datetime as a fixed-width UTC string.

    Every stored timestamp uses this format so string comparison in
    DynamoDB expressions matches chronological order.

    Example:
        >>> format_timestamp(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc))
        '2024-01-15T10:30:00.000000Z'
    """
    return ensure_utc(value).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        # Rows written by other producers may use plain isoformat()
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
