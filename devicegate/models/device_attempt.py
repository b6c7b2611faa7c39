from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from devicegate.core.time import utcnow
from devicegate.models.base import Base


class DeviceAttempt(Base):
    """Attempt counters and block state for one device fingerprint.

    Rows are never deleted; blocks are lifted by clearing fields so the
    history of a device stays on record.
    """

    __tablename__ = "device_attempts"

    id: Mapped[int] = mapped_column(primary_key=True)
    device_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # Registration track
    registration_attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    blocked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    block_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Unblock request awaiting admin review
    unblock_request_sent: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    unblock_request_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    unblock_requested_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Login track: 0 none, 1 = 5 min, 2 = 15 min, 3 = 24 h
    login_attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_login_attempt_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    login_block_level: Mapped[int] = mapped_column(Integer, default=0)
    login_block_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<DeviceAttempt {self.device_id} reg={self.registration_attempts} "
            f"blocked={self.is_blocked} login={self.login_attempts}/L{self.login_block_level}>"
        )
