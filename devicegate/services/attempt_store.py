"""Durable store for device attempt records.

All mutations go through :func:`locked_record`, which serializes writers for
one device id (striped in-process lock plus a row lock) and commits or rolls
back the whole read-modify-write as one transaction. Reads always hit the
database; nothing here caches a record between calls.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from devicegate.core.config import get_settings
from devicegate.core.errors import AccessControlError, NotFound, StoreUnavailable
from devicegate.core.locks import KeyedLock
from devicegate.core.time import utcnow
from devicegate.core.validation import clean_device_id
from devicegate.models.device_attempt import DeviceAttempt

logger = logging.getLogger(__name__)

device_locks = KeyedLock(get_settings().device_lock_stripes)


def _select(db: Session, device_id: str, for_update: bool = False) -> DeviceAttempt | None:
    query = (
        db.query(DeviceAttempt)
        .filter(DeviceAttempt.device_id == device_id)
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    return query.first()


def _insert(db: Session, device_id: str) -> DeviceAttempt:
    """Create a zeroed record, or return the one a concurrent writer just created."""
    record = DeviceAttempt(
        device_id=device_id,
        created_at=utcnow(),
        registration_attempts=0,
        is_blocked=False,
        unblock_request_sent=False,
        login_attempts=0,
        login_block_level=0,
    )
    db.add(record)
    try:
        db.flush()
    except IntegrityError:
        # Another worker inserted the same device first; use its row
        db.rollback()
        existing = _select(db, device_id, for_update=True)
        if existing is None:
            raise
        return existing
    logger.info("Tracking new device %s", device_id)
    return record


def get_record(db: Session, device_id: str) -> DeviceAttempt | None:
    """Fresh read of a device record, ``None`` when the device was never seen."""
    device_id = clean_device_id(device_id)
    try:
        return _select(db, device_id)
    except SQLAlchemyError as exc:
        raise StoreUnavailable("Device store unavailable", device_id=device_id) from exc


def require_record(db: Session, device_id: str) -> DeviceAttempt:
    record = get_record(db, device_id)
    if record is None:
        raise NotFound("Device not found", device_id=device_id)
    return record


@contextmanager
def locked_record(db: Session, device_id: str, create: bool = True) -> Iterator[DeviceAttempt]:
    """Yield the record for ``device_id`` with exclusive write access.

    The record is created on first contact when ``create`` is true, otherwise
    a missing record raises ``NotFound``. Changes made inside the block are
    committed on exit; any error rolls the transaction back. Database errors
    are re-raised as ``StoreUnavailable``.
    """
    device_id = clean_device_id(device_id)
    with device_locks.hold(device_id):
        try:
            record = _select(db, device_id, for_update=True)
            if record is None:
                if not create:
                    raise NotFound("Device not found", device_id=device_id)
                record = _insert(db, device_id)
            yield record
            db.commit()
            db.refresh(record)
        except AccessControlError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Device store error for %s: %s", device_id, exc)
            raise StoreUnavailable("Device store unavailable", device_id=device_id) from exc
        except Exception:
            db.rollback()
            raise


def list_blocked(db: Session) -> list[DeviceAttempt]:
    """All registration-blocked devices, oldest block first."""
    try:
        return (
            db.query(DeviceAttempt)
            .filter(DeviceAttempt.is_blocked.is_(True))
            .order_by(DeviceAttempt.blocked_at.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise StoreUnavailable("Device store unavailable") from exc


def list_pending_unblock_requests(db: Session) -> list[DeviceAttempt]:
    """Blocked devices with a request awaiting review, oldest request first."""
    try:
        return (
            db.query(DeviceAttempt)
            .filter(
                DeviceAttempt.is_blocked.is_(True),
                DeviceAttempt.unblock_request_sent.is_(True),
            )
            .order_by(DeviceAttempt.unblock_requested_at.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise StoreUnavailable("Device store unavailable") from exc
