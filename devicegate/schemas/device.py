"""Pydantic schemas for device status, unblock requests and admin review."""

from datetime import datetime

from pydantic import BaseModel, Field

# Checked here so obviously bad payloads never reach the engine, which
# validates again against the configured bounds.
UNBLOCK_MESSAGE_MIN_LENGTH = 30
UNBLOCK_MESSAGE_MAX_LENGTH = 500


class DeviceSignalsIn(BaseModel):
    """Environment signals reported by the browser."""

    user_agent: str | None = Field(default=None, max_length=512)
    language: str | None = Field(default=None, max_length=35)
    color_depth: int | None = Field(default=None, ge=0, le=64)
    screen_width: int | None = Field(default=None, ge=0, le=100_000)
    screen_height: int | None = Field(default=None, ge=0, le=100_000)
    timezone_offset: int | None = Field(default=None, ge=-1440, le=1440)
    hardware_concurrency: int | None = Field(default=None, ge=0, le=4096)
    device_memory: float | None = Field(default=None, ge=0)
    platform: str | None = Field(default=None, max_length=100)


class FingerprintOut(BaseModel):
    device_id: str
    is_unknown: bool
    device_name: str
    device_model: str
    device_platform: str


class DeviceStatusOut(BaseModel):
    """Registration and login state of a device, as shown to the device itself."""

    device_id: str
    is_blocked: bool
    registration_attempts: int
    unblock_request_sent: bool
    can_request_unblock: bool
    message: str
    login_blocked: bool = False
    login_block_expires_at: datetime | None = None
    remaining_minutes: int | None = None


class UnblockRequestIn(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=128)
    message: str = Field(
        ..., min_length=UNBLOCK_MESSAGE_MIN_LENGTH, max_length=UNBLOCK_MESSAGE_MAX_LENGTH
    )


class RejectUnblockIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class BlockDeviceIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class DeviceAttemptOut(BaseModel):
    """Full attempt record for administrators."""

    device_id: str
    created_at: datetime
    registration_attempts: int
    last_attempt_at: datetime | None
    is_blocked: bool
    blocked_at: datetime | None
    block_reason: str | None
    unblock_request_sent: bool
    unblock_request_message: str | None
    unblock_requested_at: datetime | None
    login_attempts: int
    last_login_attempt_at: datetime | None
    login_block_level: int
    login_block_expires_at: datetime | None

    class Config:
        from_attributes = True


class UnblockDecisionOut(BaseModel):
    status: str
    message: str
    device: DeviceAttemptOut


class RegistrationDeniedOut(BaseModel):
    detail: str
    unblock_request_sent: bool
    can_request_unblock: bool


class LoginDeniedOut(BaseModel):
    detail: str
    expires_at: datetime
    remaining_minutes: int
    level: int


class ActivityLogOut(BaseModel):
    id: int
    created_at: datetime
    level: str
    source: str
    message: str
    device_id: str | None
    user_id: int | None

    class Config:
        from_attributes = True
