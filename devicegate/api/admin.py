"""Admin API endpoints for reviewing blocked devices and unblock requests."""

from fastapi import APIRouter, Depends, Query
from fastapi import Request as FastAPIRequest
from sqlalchemy.orm import Session

from devicegate.api.deps import get_current_admin, get_db
from devicegate.core.rate_limit import limiter
from devicegate.models.user import User
from devicegate.schemas.device import (
    ActivityLogOut,
    BlockDeviceIn,
    DeviceAttemptOut,
    RejectUnblockIn,
    UnblockDecisionOut,
)
from devicegate.services.activity_log import get_recent_activity
from devicegate.services.attempt_store import require_record
from devicegate.services.unblock import (
    UnblockState,
    approve_unblock_request,
    block_device,
    list_blocked_devices,
    list_unblock_requests,
    reject_unblock_request,
)

router = APIRouter()


@router.get("/unblock-requests", response_model=list[DeviceAttemptOut])
@limiter.limit("120/minute")
def admin_unblock_requests(
    request: FastAPIRequest,
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
):
    return list_unblock_requests(db)


@router.get("/blocked-devices", response_model=list[DeviceAttemptOut])
@limiter.limit("120/minute")
def admin_blocked_devices(
    request: FastAPIRequest,
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
):
    return list_blocked_devices(db)


@router.get("/devices/{device_id}", response_model=DeviceAttemptOut)
def admin_get_device(
    device_id: str,
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
):
    return require_record(db, device_id)


@router.post("/devices/{device_id}/approve", response_model=UnblockDecisionOut)
def admin_approve_unblock(
    device_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> UnblockDecisionOut:
    record = approve_unblock_request(db, device_id, admin_id=admin.id)
    return UnblockDecisionOut(
        status=UnblockState.APPROVED.value,
        message="Device unblocked successfully",
        device=DeviceAttemptOut.model_validate(record),
    )


@router.post("/devices/{device_id}/reject", response_model=UnblockDecisionOut)
def admin_reject_unblock(
    device_id: str,
    payload: RejectUnblockIn,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
) -> UnblockDecisionOut:
    record = reject_unblock_request(db, device_id, payload.reason, admin_id=admin.id)
    return UnblockDecisionOut(
        status=UnblockState.REJECTED.value,
        message="Unblock request rejected",
        device=DeviceAttemptOut.model_validate(record),
    )


@router.post("/devices/{device_id}/block", response_model=DeviceAttemptOut)
def admin_block_device(
    device_id: str,
    payload: BlockDeviceIn,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return block_device(db, device_id, payload.reason, admin_id=admin.id)


@router.get("/activity", response_model=list[ActivityLogOut])
def admin_activity(
    limit: int = Query(default=50, ge=1, le=200),
    device_id: str | None = None,
    db: Session = Depends(get_db),
    _admin: User = Depends(get_current_admin),
):
    return get_recent_activity(db, limit=limit, device_id=device_id)
