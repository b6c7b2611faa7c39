from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from devicegate.api.deps import get_current_user, get_db
from devicegate.core.config import get_settings
from devicegate.core.fingerprint import describe_device, is_unknown_device
from devicegate.core.rate_limit import limiter
from devicegate.core.time import utcnow
from devicegate.models.user import User, UserRole
from devicegate.schemas.auth import Token
from devicegate.schemas.device import LoginDeniedOut, RegistrationDeniedOut
from devicegate.schemas.user import RegisterRequest, UserOut
from devicegate.services.access_gate import (
    LoginDenied,
    RegistrationDenied,
    check_login,
    check_registration,
    login_denial_for,
)
from devicegate.services.attempt_tracker import (
    record_login_attempt,
    record_login_success,
    record_registration_attempt,
)
from devicegate.services.auth import (
    AccountConflictError,
    authenticate_user,
    bind_device,
    create_access_token,
    create_user,
    get_user_by_device_id,
    get_user_by_email,
    get_user_by_username,
)

router = APIRouter()
settings = get_settings()

DEVICE_TAKEN_DETAIL = (
    "An account is already registered from this device. Each device can only have one account."
)
ACCOUNT_TAKEN_DETAIL = "An account with this username, email or device already exists"


def registration_denied_response(denial: RegistrationDenied) -> JSONResponse:
    body = RegistrationDeniedOut(
        detail=denial.reason,
        unblock_request_sent=denial.unblock_request_sent,
        can_request_unblock=denial.can_request_unblock,
    )
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content=body.model_dump())


def login_denied_response(denial: LoginDenied) -> JSONResponse:
    body = LoginDeniedOut(
        detail=denial.reason,
        expires_at=denial.expires_at,
        remaining_minutes=denial.remaining_minutes,
        level=denial.level,
    )
    retry_after = max(int((denial.expires_at - utcnow()).total_seconds()), 1)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=body.model_dump(mode="json"),
        headers={"Retry-After": str(retry_after)},
    )


@router.post(
    "/register",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": RegistrationDeniedOut}},
)
@limiter.limit(lambda: f"{settings.registration_rate_limit_per_minute}/minute")
def register(
    request: Request,
    reg_data: RegisterRequest,
    db: Session = Depends(get_db),
):
    """Create an account bound to the registering device."""
    verdict = check_registration(db, reg_data.device_id)
    if isinstance(verdict, RegistrationDenied):
        return registration_denied_response(verdict)

    device_id = reg_data.device_id.strip()
    conflict = _registration_conflict(db, reg_data, device_id)
    if conflict is not None:
        return _reject_registration(db, device_id, conflict)

    user_agent = reg_data.user_agent or request.headers.get("user-agent")
    try:
        return create_user(
            db,
            reg_data.username,
            reg_data.password,
            role=UserRole.MEMBER.value,
            email=reg_data.email,
            device_id=device_id,
            device=describe_device(user_agent),
        )
    except AccountConflictError:
        conflict = _registration_conflict(db, reg_data, device_id) or ACCOUNT_TAKEN_DETAIL
        return _reject_registration(db, device_id, conflict)


def _registration_conflict(db: Session, reg_data: RegisterRequest, device_id: str) -> str | None:
    if get_user_by_username(db, reg_data.username):
        return "Username already exists"
    if get_user_by_email(db, reg_data.email):
        return "Email already exists"
    if get_user_by_device_id(db, device_id):
        return DEVICE_TAKEN_DETAIL
    return None


def _reject_registration(db: Session, device_id: str, detail: str) -> JSONResponse:
    # Every rejected registration counts against the device
    record = record_registration_attempt(db, device_id)
    if record.is_blocked:
        return registration_denied_response(check_registration(db, device_id))
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


@router.post("/login", response_model=Token, responses={429: {"model": LoginDeniedOut}})
@limiter.limit(lambda: f"{settings.login_rate_limit_per_minute}/minute")
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    device_id: str = Form(..., max_length=128),
    db: Session = Depends(get_db),
):
    verdict = check_login(db, device_id)
    if isinstance(verdict, LoginDenied):
        return login_denied_response(verdict)

    device_id = device_id.strip()
    failure_detail = "Incorrect username or password"
    user = authenticate_user(db, form_data.username, form_data.password)
    if user is not None and user.device_id is not None and not user.is_bound_to(device_id):
        failure_detail = "This account is registered to another device."
        user = None

    if user is None:
        # The shared fallback id has no per-device counter; the address limiter still applies
        if not is_unknown_device(device_id):
            record = record_login_attempt(db, device_id)
            denial = login_denial_for(record)
            if denial is not None:
                return login_denied_response(denial)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=failure_detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")

    if user.device_id is None and not is_unknown_device(device_id):
        owner = get_user_by_device_id(db, device_id)
        if owner is not None and owner.id != user.id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=DEVICE_TAKEN_DETAIL)
        try:
            bind_device(db, user, device_id, describe_device(request.headers.get("user-agent")))
        except AccountConflictError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail=DEVICE_TAKEN_DETAIL
            ) from None

    if not is_unknown_device(device_id):
        record_login_success(db, device_id)
    access_token = create_access_token(data={"sub": user.username})
    return Token(access_token=access_token)


@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_user)) -> User:
    return current_user
