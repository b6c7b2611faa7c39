from datetime import UTC, datetime, timedelta

import bcrypt
import jwt
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from devicegate.core.config import get_settings
from devicegate.core.fingerprint import DeviceDescription
from devicegate.models.user import User, UserRole
from devicegate.schemas.auth import TokenData

settings = get_settings()


class AccountConflictError(Exception):
    """Raised when a username, email or device is already taken by another account."""


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(UTC) + timedelta(minutes=settings.jwt_expire_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> TokenData | None:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        username: str = payload.get("sub")
        if username is None:
            return None
        return TokenData(username=username)
    except jwt.PyJWTError:
        return None


# Pre-computed hash for timing equalization when user is not found.
_DUMMY_HASH = get_password_hash("dummy-timing-equalization")


def authenticate_user(db: Session, login: str, password: str) -> User | None:
    """Check credentials, accepting either the username or the email as login."""
    user = db.query(User).filter(or_(User.username == login, User.email == login)).first()
    if not user:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.query(User).filter(User.username == username).first()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email).first()


def get_user_by_device_id(db: Session, device_id: str) -> User | None:
    return db.query(User).filter(User.device_id == device_id).first()


def create_user(
    db: Session,
    username: str,
    password: str,
    role: str = UserRole.MEMBER.value,
    email: str | None = None,
    device_id: str | None = None,
    device: DeviceDescription | None = None,
) -> User:
    user = User(
        username=username,
        email=email,
        password_hash=get_password_hash(password),
        role=role,
        device_id=device_id,
    )
    if device is not None:
        _apply_device_description(user, device)
    db.add(user)
    return _commit_user(db, user)


def bind_device(
    db: Session, user: User, device_id: str, device: DeviceDescription | None = None
) -> User:
    """Bind an account that has no device yet to ``device_id``."""
    user.device_id = device_id
    if device is not None:
        _apply_device_description(user, device)
    return _commit_user(db, user)


def _commit_user(db: Session, user: User) -> User:
    try:
        db.commit()
    except IntegrityError as exc:
        # Unique constraint violation: a concurrent request took the username, email or device
        db.rollback()
        raise AccountConflictError("Account details already taken") from exc
    db.refresh(user)
    return user


def _apply_device_description(user: User, device: DeviceDescription) -> None:
    user.device_name = device.name
    user.device_model = device.model
    user.device_platform = device.platform
