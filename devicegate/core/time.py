"""UTC datetime utilities.

Every timestamp stored on a device record is a **naive** UTC datetime so it
compares cleanly with SQLAlchemy ``DateTime`` columns on both SQLite and
PostgreSQL (without ``timezone=True``).
"""

import math
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def minutes_until(moment: datetime, now: datetime | None = None) -> int:
    """Whole minutes left until ``moment``, rounded up. Zero once it has passed."""
    now = now or utcnow()
    seconds = (moment - now).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 60)
