"""Allow/deny decisions for registration and login.

The gate only reads and decides. The caller records the outcome of the
guarded operation afterwards (``record_registration_attempt``,
``record_login_attempt`` or ``record_login_success``). Denials carry
structured metadata so callers never have to parse a message to find out how
long a block lasts.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from devicegate.core import lockout
from devicegate.core.fingerprint import is_unknown_device
from devicegate.core.time import utcnow
from devicegate.core.validation import clean_device_id
from devicegate.models.device_attempt import DeviceAttempt
from devicegate.services.attempt_store import get_record
from devicegate.services.attempt_tracker import expire_login_block

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE_REASON = "Device could not be identified"
REGISTRATION_BLOCKED_REASON = (
    "This device has been blocked due to too many registration attempts. "
    "Please submit an unblock request to the administrator."
)
REGISTRATION_PENDING_REASON = (
    "This device has been blocked. Your unblock request is awaiting administrator review."
)


@dataclass(frozen=True)
class Allow:
    allowed = True


@dataclass(frozen=True)
class RegistrationDenied:
    reason: str
    unblock_request_sent: bool
    can_request_unblock: bool
    allowed = False


@dataclass(frozen=True)
class LoginDenied:
    reason: str
    expires_at: datetime
    remaining_minutes: int
    level: int
    allowed = False


ALLOW = Allow()


def check_registration(db: Session, device_id: str) -> Allow | RegistrationDenied:
    """Decide whether ``device_id`` may create a new account."""
    device_id = clean_device_id(device_id)
    if is_unknown_device(device_id):
        return RegistrationDenied(
            reason=UNKNOWN_DEVICE_REASON, unblock_request_sent=False, can_request_unblock=False
        )

    record = get_record(db, device_id)
    if record is None or not record.is_blocked:
        return ALLOW

    logger.warning("Registration denied for blocked device %s", device_id)
    if record.unblock_request_sent:
        return RegistrationDenied(
            reason=REGISTRATION_PENDING_REASON,
            unblock_request_sent=True,
            can_request_unblock=False,
        )
    return RegistrationDenied(
        reason=REGISTRATION_BLOCKED_REASON,
        unblock_request_sent=False,
        can_request_unblock=True,
    )


def login_denial_for(record: DeviceAttempt, now: datetime | None = None) -> LoginDenied | None:
    """Denial describing the login block currently in force on ``record``, if any."""
    now = now or utcnow()
    level = record.login_block_level or 0
    expires_at = record.login_block_expires_at
    if not lockout.is_login_block_active(level, expires_at, now):
        return None
    minutes = lockout.remaining_minutes(expires_at, now)
    return LoginDenied(
        reason=lockout.login_block_message(level, minutes),
        expires_at=expires_at,
        remaining_minutes=minutes,
        level=level,
    )


def check_login(
    db: Session, device_id: str, now: datetime | None = None
) -> Allow | LoginDenied:
    """Decide whether ``device_id`` may attempt a login right now.

    A block whose expiry has passed is treated as over: the stored level and
    expiry are reset, the cumulative failure counter is kept.
    """
    now = now or utcnow()
    device_id = clean_device_id(device_id)
    record = get_record(db, device_id)
    if record is None:
        return ALLOW

    denial = login_denial_for(record, now)
    if denial is not None:
        logger.warning(
            "Login denied for device %s, %d minutes remaining", device_id, denial.remaining_minutes
        )
        return denial

    level = record.login_block_level or 0
    if lockout.is_login_block_stale(level, record.login_block_expires_at, now):
        expire_login_block(db, device_id, now=now)
    return ALLOW
