"""Progressive lockout policy for device registration and login attempts.

Two independent tracks share one device record:

Registration track:
- more than ``ceiling`` registration attempts blocks the device until an
  administrator approves an unblock request.

Login track, keyed on the cumulative failed-login count:
- 1-2 failures: no block
- 3-4 failures: level 1, 5 minutes
- 5 failures: level 2, 15 minutes
- 6+ failures: level 3, 24 hours

The failure counter is only cleared by a successful login. When a timed block
runs out the level drops back to 0 but the counter stays where it was, so a
device that was blocked once re-enters at the next tier on its very next
failure.

Everything here is pure: callers pass ``now`` and the current counters in and
get a decision back.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from devicegate.core.time import minutes_until

REGISTRATION_BLOCK_REASON = "Exceeded maximum registration attempts"
DEFAULT_REGISTRATION_CEILING = 5

LEVEL_NONE = 0
LEVEL_SHORT = 1
LEVEL_MEDIUM = 2
LEVEL_LONG = 3

# (minimum failed attempts, level, duration), highest threshold first
LOGIN_THRESHOLDS: tuple[tuple[int, int, timedelta], ...] = (
    (6, LEVEL_LONG, timedelta(hours=24)),
    (5, LEVEL_MEDIUM, timedelta(minutes=15)),
    (3, LEVEL_SHORT, timedelta(minutes=5)),
)


@dataclass(frozen=True)
class LoginBlock:
    level: int
    duration: timedelta | None

    @property
    def is_blocking(self) -> bool:
        return self.level > LEVEL_NONE


NO_LOGIN_BLOCK = LoginBlock(level=LEVEL_NONE, duration=None)


def exceeds_registration_ceiling(
    attempts: int, ceiling: int = DEFAULT_REGISTRATION_CEILING
) -> bool:
    """True once ``attempts`` is strictly above ``ceiling``."""
    return attempts > ceiling


def login_block_for(failed_attempts: int) -> LoginBlock:
    """Map a cumulative failed-login count onto a block level and duration."""
    for minimum, level, duration in LOGIN_THRESHOLDS:
        if failed_attempts >= minimum:
            return LoginBlock(level=level, duration=duration)
    return NO_LOGIN_BLOCK


def login_block_expiry(failed_attempts: int, now: datetime) -> tuple[int, datetime | None]:
    """Level and expiry to store after ``failed_attempts`` failures at ``now``."""
    block = login_block_for(failed_attempts)
    if not block.is_blocking:
        return LEVEL_NONE, None
    return block.level, now + block.duration


def is_login_block_active(level: int, expires_at: datetime | None, now: datetime) -> bool:
    """True while a stored login block is still in force.

    A level above zero with an expiry at or before ``now`` is treated as
    expired even though the stored level has not been reset yet.
    """
    if level <= LEVEL_NONE or expires_at is None:
        return False
    return now < expires_at


def is_login_block_stale(level: int, expires_at: datetime | None, now: datetime) -> bool:
    """True when stored block fields remain but the block has run out."""
    if level <= LEVEL_NONE and expires_at is None:
        return False
    return not is_login_block_active(level, expires_at, now)


def remaining_minutes(expires_at: datetime, now: datetime) -> int:
    """Minutes left on an active block, rounded up, never below 1."""
    return max(minutes_until(expires_at, now), 1)


def login_block_message(level: int, minutes: int) -> str:
    if level >= LEVEL_LONG and minutes > 60:
        return f"Too many failed login attempts. This device is locked for {_duration(minutes)}."
    return f"Too many failed login attempts. Please try again in {_duration(minutes)}."


def _duration(minutes: int) -> str:
    """``"23 hours 5 minutes"``; never rounds the remaining time up."""
    hours, minutes = divmod(minutes, 60)
    parts = []
    if hours:
        parts.append(f"{hours} hour" if hours == 1 else f"{hours} hours")
    if minutes or not hours:
        parts.append(f"{minutes} minute" if minutes == 1 else f"{minutes} minutes")
    return " ".join(parts)
