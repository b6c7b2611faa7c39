from devicegate.models.activity_log import ActivityLog
from devicegate.models.base import Base
from devicegate.models.device_attempt import DeviceAttempt
from devicegate.models.user import User

__all__ = [
    "Base",
    "User",
    "DeviceAttempt",
    "ActivityLog",
]
