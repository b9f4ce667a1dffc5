"""UTC helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, so anything read from the database goes through ``as_utc`` before
it is compared with an aware ``utcnow()``.
"""

import math
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def minutes_until(moment: datetime, now: Optional[datetime] = None) -> int:
    """Whole minutes left until ``moment``, rounded up, never below 1."""
    now = now or utcnow()
    seconds = (as_utc(moment) - now).total_seconds()
    return max(1, math.ceil(seconds / 60))
