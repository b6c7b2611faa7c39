from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from devicegate.core.time import utcnow
from devicegate.models.base import Base


class UserRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.MEMBER.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # The one device this account may sign in from (bound on first use)
    device_id: Mapped[str | None] = mapped_column(
        String(128), unique=True, nullable=True, index=True
    )
    device_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    device_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    device_platform: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def is_bound_to(self, device_id: str) -> bool:
        return self.device_id is not None and self.device_id == device_id
