"""Attempt tracking for device registration and login.

Each call runs one read-modify-write on the device record inside
:func:`locked_record`, so concurrent attempts from the same device are counted
one after the other and a block is applied exactly once.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from devicegate.core import lockout
from devicegate.core.config import get_settings
from devicegate.core.time import utcnow
from devicegate.models.device_attempt import DeviceAttempt
from devicegate.services.activity_log import record_activity
from devicegate.services.attempt_store import locked_record

logger = logging.getLogger(__name__)


def apply_registration_block(record: DeviceAttempt, reason: str, now: datetime) -> bool:
    """Move ``record`` to blocked. Returns False if it was already blocked.

    ``blocked_at`` and ``block_reason`` are only written on the transition so
    the first block stays on record.
    """
    if record.is_blocked:
        return False
    record.is_blocked = True
    record.blocked_at = now
    record.block_reason = reason
    return True


def record_registration_attempt(
    db: Session, device_id: str, now: datetime | None = None
) -> DeviceAttempt:
    """Count a registration attempt and block the device once over the ceiling."""
    now = now or utcnow()
    ceiling = get_settings().registration_attempt_ceiling
    with locked_record(db, device_id) as record:
        record.registration_attempts = (record.registration_attempts or 0) + 1
        record.last_attempt_at = now

        if lockout.exceeds_registration_ceiling(record.registration_attempts, ceiling):
            if apply_registration_block(record, lockout.REGISTRATION_BLOCK_REASON, now):
                logger.info(
                    "Device %s blocked after %d registration attempts",
                    record.device_id,
                    record.registration_attempts,
                )
                record_activity(
                    db,
                    "warning",
                    "registration",
                    f"Device blocked after {record.registration_attempts} registration attempts",
                    device_id=record.device_id,
                )
    return record


def record_login_attempt(db: Session, device_id: str, now: datetime | None = None) -> DeviceAttempt:
    """Count a failed login and escalate the login block level."""
    now = now or utcnow()
    with locked_record(db, device_id) as record:
        record.login_attempts = (record.login_attempts or 0) + 1
        record.last_login_attempt_at = now

        level, expires_at = lockout.login_block_expiry(record.login_attempts, now)
        current_level = record.login_block_level or 0
        still_active = lockout.is_login_block_active(
            current_level, record.login_block_expires_at, now
        )
        if not still_active:
            current_level = lockout.LEVEL_NONE
            record.login_block_expires_at = None

        if level > lockout.LEVEL_NONE:
            record.login_block_level = max(level, current_level)
            if record.login_block_expires_at is None or expires_at > record.login_block_expires_at:
                record.login_block_expires_at = expires_at
            logger.info(
                "Device %s login blocked at level %d after %d failed attempts",
                record.device_id,
                record.login_block_level,
                record.login_attempts,
            )
        else:
            record.login_block_level = current_level
    return record


def record_login_success(db: Session, device_id: str) -> DeviceAttempt:
    """Clear the login track after a successful login."""
    with locked_record(db, device_id) as record:
        if record.login_attempts or record.login_block_level:
            logger.info(
                "Device %s login counters reset after %d failed attempts",
                record.device_id,
                record.login_attempts or 0,
            )
        record.login_attempts = 0
        record.login_block_level = lockout.LEVEL_NONE
        record.login_block_expires_at = None
    return record


def expire_login_block(db: Session, device_id: str, now: datetime | None = None) -> DeviceAttempt:
    """Drop a login block whose timer has run out.

    Only the level and expiry are cleared; the cumulative failure counter is
    left alone. A block that is still running is not touched.
    """
    now = now or utcnow()
    with locked_record(db, device_id) as record:
        if lockout.is_login_block_stale(
            record.login_block_level or 0, record.login_block_expires_at, now
        ):
            record.login_block_level = lockout.LEVEL_NONE
            record.login_block_expires_at = None
    return record
