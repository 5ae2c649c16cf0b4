"""Date-time helpers for ledger expiry calculations."""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime, the storage convention."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: Optional[datetime]) -> datetime:
    """Normalise an optional timestamp to naive UTC, defaulting to now."""

    if value is None:
        return utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def expiry_after(start: datetime, days: Optional[int]) -> Optional[datetime]:
    """Return ``start + days`` or None for a grant that never expires."""

    if days is None:
        return None
    return start + timedelta(days=days)


def days_remaining(expires_at: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days left before ``expires_at``, rounded up; None when perpetual."""

    if expires_at is None:
        return None
    return math.ceil((expires_at - now).total_seconds() / 86400)
