"""Activity log service: audit trail for device blocks and unblock reviews."""

from sqlalchemy.orm import Session

from devicegate.core.time import utcnow
from devicegate.models.activity_log import ActivityLog

_MAX_MESSAGE_LENGTH = 500


def record_activity(
    db: Session,
    level: str,
    source: str,
    message: str,
    device_id: str | None = None,
    user_id: int | None = None,
) -> ActivityLog:
    """Stage an activity log entry in the caller's transaction.

    The entry is committed together with the state change it describes.
    """
    entry = ActivityLog(
        created_at=utcnow(),
        level=level,
        source=source,
        message=message[:_MAX_MESSAGE_LENGTH],
        device_id=device_id,
        user_id=user_id,
    )
    db.add(entry)
    return entry


def get_recent_activity(
    db: Session,
    limit: int = 50,
    device_id: str | None = None,
) -> list[ActivityLog]:
    """Get recent activity log entries, newest first."""
    query = db.query(ActivityLog)
    if device_id is not None:
        query = query.filter(ActivityLog.device_id == device_id)
    return query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).all()
