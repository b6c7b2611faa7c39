"""Unblock request workflow for registration-blocked devices.

A blocked device may send one request at a time. An administrator either
approves it, which lifts the block and resets the registration counter, or
rejects it, which keeps the block and appends the rejection to the block
reason. After a rejection the device may ask again.
"""

import logging
from enum import Enum

from sqlalchemy.orm import Session

from devicegate.core.config import get_settings
from devicegate.core.errors import InvalidState, ValidationError
from devicegate.core.time import utcnow
from devicegate.core.validation import normalize_text, validate_length
from devicegate.models.device_attempt import DeviceAttempt
from devicegate.services.activity_log import record_activity
from devicegate.services.attempt_store import (
    list_blocked,
    list_pending_unblock_requests,
    locked_record,
)
from devicegate.services.attempt_tracker import apply_registration_block

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_REASON = "Registration attempts"


class UnblockState(str, Enum):
    NONE = "none"
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"


def unblock_state(record: DeviceAttempt | None) -> UnblockState:
    """Current workflow state of a device record.

    APPROVED and REJECTED are outcomes of a review, not stored states: once
    reviewed, a record reads as NONE again (unblocked, or blocked with no
    request pending).
    """
    if record is not None and record.is_blocked and record.unblock_request_sent:
        return UnblockState.REQUESTED
    return UnblockState.NONE


def _require_pending(record: DeviceAttempt) -> None:
    if not record.is_blocked:
        raise InvalidState("This device is not blocked", device_id=record.device_id)
    if not record.unblock_request_sent:
        raise InvalidState(
            "No unblock request is pending for this device", device_id=record.device_id
        )


def validate_unblock_message(message: str | None) -> str:
    """Normalize an unblock message and enforce the configured length bounds."""
    settings = get_settings()
    cleaned = normalize_text(message) or ""
    if not validate_length(
        cleaned, settings.unblock_message_min_length, settings.unblock_message_max_length
    ):
        raise ValidationError(
            f"Message must be between {settings.unblock_message_min_length} and "
            f"{settings.unblock_message_max_length} characters"
        )
    return cleaned


def submit_unblock_request(db: Session, device_id: str, message: str) -> DeviceAttempt:
    """Ask an administrator to lift the registration block on ``device_id``.

    Raises:
        ValidationError: message length out of bounds.
        NotFound: no record for the device.
        InvalidState: device not blocked, or a request is already pending.
    """
    cleaned = validate_unblock_message(message)
    with locked_record(db, device_id, create=False) as record:
        if not record.is_blocked:
            raise InvalidState("This device is not blocked", device_id=record.device_id)
        if record.unblock_request_sent:
            raise InvalidState(
                "An unblock request is already pending for this device",
                device_id=record.device_id,
            )
        record.unblock_request_sent = True
        record.unblock_request_message = cleaned
        record.unblock_requested_at = utcnow()
        record_activity(
            db, "info", "unblock", "Unblock request submitted", device_id=record.device_id
        )
    logger.info("Unblock request submitted for device %s", record.device_id)
    return record


def approve_unblock_request(
    db: Session, device_id: str, admin_id: int | None = None
) -> DeviceAttempt:
    """Lift the block and let the device register again from a clean slate."""
    with locked_record(db, device_id, create=False) as record:
        _require_pending(record)
        record.is_blocked = False
        record.unblock_request_sent = False
        record.unblock_request_message = None
        record.unblock_requested_at = None
        record.registration_attempts = 0
        record.blocked_at = None
        record.block_reason = None
        record_activity(
            db,
            "info",
            "unblock",
            "Unblock request approved",
            device_id=record.device_id,
            user_id=admin_id,
        )
    logger.info("Unblock request approved for device %s", record.device_id)
    return record


def reject_unblock_request(
    db: Session, device_id: str, rejection_reason: str, admin_id: int | None = None
) -> DeviceAttempt:
    """Keep the block and record why the request was turned down."""
    reason = normalize_text(rejection_reason)
    if not reason:
        raise ValidationError("Rejection reason is required")

    with locked_record(db, device_id, create=False) as record:
        _require_pending(record)
        record.unblock_request_sent = False
        record.block_reason = (
            f"{record.block_reason or DEFAULT_BLOCK_REASON} (Request rejected: {reason})"
        )
        record_activity(
            db,
            "info",
            "unblock",
            f"Unblock request rejected: {reason}",
            device_id=record.device_id,
            user_id=admin_id,
        )
    logger.info("Unblock request rejected for device %s", record.device_id)
    return record


def block_device(
    db: Session, device_id: str, reason: str, admin_id: int | None = None
) -> DeviceAttempt:
    """Block a device on an administrator's decision, creating its record if needed."""
    reason = normalize_text(reason)
    if not reason:
        raise ValidationError("Block reason is required")

    with locked_record(db, device_id) as record:
        if not apply_registration_block(record, reason, utcnow()):
            raise InvalidState("This device is already blocked", device_id=record.device_id)
        record_activity(
            db,
            "warning",
            "admin",
            f"Device blocked by administrator: {reason}",
            device_id=record.device_id,
            user_id=admin_id,
        )
    logger.info("Device %s blocked by administrator", record.device_id)
    return record


def list_unblock_requests(db: Session) -> list[DeviceAttempt]:
    return list_pending_unblock_requests(db)


def list_blocked_devices(db: Session) -> list[DeviceAttempt]:
    return list_blocked(db)
