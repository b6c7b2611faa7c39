"""Public device endpoints: status, fingerprinting and unblock requests."""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from devicegate.api.deps import get_db
from devicegate.core.config import get_settings
from devicegate.core.fingerprint import (
    DeviceSignals,
    compute_fingerprint,
    describe_device,
    is_unknown_device,
)
from devicegate.core.rate_limit import limiter
from devicegate.schemas.common import StatusMessageResponse
from devicegate.schemas.device import (
    DeviceSignalsIn,
    DeviceStatusOut,
    FingerprintOut,
    UnblockRequestIn,
)
from devicegate.services.access_gate import login_denial_for
from devicegate.services.attempt_store import get_record
from devicegate.services.unblock import submit_unblock_request

router = APIRouter()
settings = get_settings()


@router.get("/status", response_model=DeviceStatusOut)
def device_status(
    device_id: str = Query(..., min_length=1, max_length=128),
    db: Session = Depends(get_db),
) -> DeviceStatusOut:
    """Whether this device may register or log in, and whether it can ask for an unblock."""
    record = get_record(db, device_id)
    if record is None:
        return DeviceStatusOut(
            device_id=device_id.strip(),
            is_blocked=False,
            registration_attempts=0,
            unblock_request_sent=False,
            can_request_unblock=False,
            message="No registration attempts yet",
        )

    denial = login_denial_for(record)
    if record.is_blocked:
        message = "This device is blocked due to too many registration attempts"
    else:
        message = "This device is not blocked"
    return DeviceStatusOut(
        device_id=record.device_id,
        is_blocked=record.is_blocked,
        registration_attempts=record.registration_attempts,
        unblock_request_sent=record.unblock_request_sent,
        can_request_unblock=record.is_blocked and not record.unblock_request_sent,
        message=message,
        login_blocked=denial is not None,
        login_block_expires_at=denial.expires_at if denial else None,
        remaining_minutes=denial.remaining_minutes if denial else None,
    )


@router.post("/fingerprint", response_model=FingerprintOut)
def fingerprint(signals: DeviceSignalsIn, request: Request) -> FingerprintOut:
    """Derive a device id from browser-reported signals."""
    data = signals.model_dump()
    if not data.get("user_agent"):
        data["user_agent"] = request.headers.get("user-agent")
    device_id = compute_fingerprint(DeviceSignals(**data))
    description = describe_device(data["user_agent"])
    return FingerprintOut(
        device_id=device_id,
        is_unknown=is_unknown_device(device_id),
        device_name=description.name,
        device_model=description.model,
        device_platform=description.platform,
    )


@router.post("/unblock-request", response_model=StatusMessageResponse)
@limiter.limit(lambda: f"{settings.unblock_rate_limit_per_minute}/minute")
def unblock_request(
    request: Request,
    payload: UnblockRequestIn,
    db: Session = Depends(get_db),
) -> StatusMessageResponse:
    submit_unblock_request(db, payload.device_id, payload.message)
    return StatusMessageResponse(
        status="ok",
        message="Your unblock request has been sent to the administrator",
    )
