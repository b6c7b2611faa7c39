"""Tests for device-bound registration and login endpoints."""

from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from devicegate.core.fingerprint import UNKNOWN_DEVICE_ID
from devicegate.models.user import User
from devicegate.services.attempt_store import get_record
from devicegate.services.auth import create_user, get_user_by_username

MEMBER_DEVICE = "member-device-0001"
NEW_DEVICE = "new-device-0001"
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


def _registration(**overrides) -> dict:
    payload = {
        "username": "newuser",
        "email": "newuser@example.com",
        "password": "newpassword123",
        "confirm_password": "newpassword123",
        "device_id": NEW_DEVICE,
    }
    payload.update(overrides)
    return payload


def _login(client: TestClient, username: str, password: str, device_id: str):
    return client.post(
        "/api/auth/login",
        data={"username": username, "password": password, "device_id": device_id},
    )


class TestRegister:
    def test_register_success(self, client: TestClient, db: Session):
        response = client.post("/api/auth/register", json=_registration())
        assert response.status_code == 201
        data = response.json()
        assert data["username"] == "newuser"
        assert data["role"] == "member"
        assert "password_hash" not in data

        user = get_user_by_username(db, "newuser")
        assert user.device_id == NEW_DEVICE

    def test_register_records_device_description(self, client: TestClient):
        response = client.post(
            "/api/auth/register", json=_registration(user_agent=IPHONE_UA)
        )
        assert response.status_code == 201
        assert response.json()["device_platform"] == "iOS"
        assert response.json()["device_name"] == "iPhone"

    def test_successful_registration_not_counted(self, client: TestClient, db: Session):
        client.post("/api/auth/register", json=_registration())
        assert get_record(db, NEW_DEVICE) is None

    def test_password_mismatch(self, client: TestClient):
        response = client.post(
            "/api/auth/register", json=_registration(confirm_password="different123")
        )
        assert response.status_code == 422

    def test_invalid_username(self, client: TestClient):
        response = client.post("/api/auth/register", json=_registration(username="bad name!"))
        assert response.status_code == 422

    def test_duplicate_username(self, client: TestClient, db: Session, member_user: User):
        response = client.post(
            "/api/auth/register", json=_registration(username="member")
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "Username already exists"
        assert get_record(db, NEW_DEVICE).registration_attempts == 1

    def test_duplicate_email(self, client: TestClient, member_user: User):
        response = client.post(
            "/api/auth/register", json=_registration(email="member@example.com")
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "Email already exists"

    def test_one_account_per_device(self, client: TestClient, db: Session, member_user: User):
        response = client.post(
            "/api/auth/register", json=_registration(device_id=MEMBER_DEVICE)
        )
        assert response.status_code == 409
        assert "one account" in response.json()["detail"]
        assert get_record(db, MEMBER_DEVICE).registration_attempts == 1

    def test_concurrent_device_claim_is_conflict(
        self, client: TestClient, db: Session, member_user: User
    ):
        # Another request binds the device between the uniqueness check and the insert
        with patch("devicegate.api.auth.get_user_by_device_id", return_value=None):
            response = client.post(
                "/api/auth/register", json=_registration(device_id=MEMBER_DEVICE)
            )
        assert response.status_code == 409
        assert get_user_by_username(db, "newuser") is None
        assert get_record(db, MEMBER_DEVICE).registration_attempts == 1

    def test_concurrent_device_claim_can_block(
        self, client: TestClient, db: Session, member_user: User
    ):
        with patch("devicegate.api.auth.get_user_by_device_id", return_value=None):
            for _ in range(5):
                response = client.post(
                    "/api/auth/register", json=_registration(device_id=MEMBER_DEVICE)
                )
                assert response.status_code == 409
            response = client.post(
                "/api/auth/register", json=_registration(device_id=MEMBER_DEVICE)
            )
        assert response.status_code == 403
        assert response.json()["can_request_unblock"] is True
        assert get_record(db, MEMBER_DEVICE).is_blocked is True

    def test_unknown_device_denied(self, client: TestClient):
        response = client.post(
            "/api/auth/register", json=_registration(device_id=UNKNOWN_DEVICE_ID)
        )
        assert response.status_code == 403
        assert response.json()["can_request_unblock"] is False

    def test_device_blocked_after_repeated_failures(
        self, client: TestClient, db: Session, member_user: User
    ):
        for _ in range(5):
            response = client.post(
                "/api/auth/register", json=_registration(username="member")
            )
            assert response.status_code == 409

        response = client.post("/api/auth/register", json=_registration(username="member"))
        assert response.status_code == 403
        data = response.json()
        assert data["unblock_request_sent"] is False
        assert data["can_request_unblock"] is True
        assert "too many registration attempts" in data["detail"]

        record = get_record(db, NEW_DEVICE)
        assert record.is_blocked is True
        assert record.registration_attempts == 6

    def test_blocked_device_cannot_register_valid_account(
        self, client: TestClient, db: Session, member_user: User
    ):
        for _ in range(6):
            client.post("/api/auth/register", json=_registration(username="member"))

        response = client.post(
            "/api/auth/register", json=_registration(username="brandnew")
        )
        assert response.status_code == 403
        assert get_user_by_username(db, "brandnew") is None
        # Denied checks do not count as attempts
        assert get_record(db, NEW_DEVICE).registration_attempts == 6


class TestLogin:
    def test_login_success(self, client: TestClient, member_user: User):
        response = _login(client, "member", "memberpassword123", MEMBER_DEVICE)
        assert response.status_code == 200
        data = response.json()
        assert "access_token" in data
        assert data["token_type"] == "bearer"

    def test_login_with_email(self, client: TestClient, member_user: User):
        response = _login(client, "member@example.com", "memberpassword123", MEMBER_DEVICE)
        assert response.status_code == 200

    def test_wrong_password(self, client: TestClient, db: Session, member_user: User):
        response = _login(client, "member", "wrongpassword", MEMBER_DEVICE)
        assert response.status_code == 401
        assert response.json()["detail"] == "Incorrect username or password"
        assert get_record(db, MEMBER_DEVICE).login_attempts == 1

    def test_unknown_user_counts(self, client: TestClient, db: Session):
        response = _login(client, "nobody", "whatever123", NEW_DEVICE)
        assert response.status_code == 401
        assert get_record(db, NEW_DEVICE).login_attempts == 1

    def test_third_failure_blocks(self, client: TestClient, member_user: User):
        for _ in range(2):
            assert _login(client, "member", "wrongpassword", MEMBER_DEVICE).status_code == 401

        response = _login(client, "member", "wrongpassword", MEMBER_DEVICE)
        assert response.status_code == 429
        data = response.json()
        assert data["level"] == 1
        assert data["remaining_minutes"] == 5
        assert data["expires_at"]
        assert int(response.headers["Retry-After"]) > 0

    def test_blocked_device_cannot_log_in_with_right_password(
        self, client: TestClient, db: Session, member_user: User
    ):
        for _ in range(3):
            _login(client, "member", "wrongpassword", MEMBER_DEVICE)

        response = _login(client, "member", "memberpassword123", MEMBER_DEVICE)
        assert response.status_code == 429
        # Denied requests are not counted
        assert get_record(db, MEMBER_DEVICE).login_attempts == 3

    def test_success_resets_counter(self, client: TestClient, db: Session, member_user: User):
        for _ in range(2):
            _login(client, "member", "wrongpassword", MEMBER_DEVICE)
        assert _login(client, "member", "memberpassword123", MEMBER_DEVICE).status_code == 200

        record = get_record(db, MEMBER_DEVICE)
        assert record.login_attempts == 0
        assert record.login_block_level == 0

    def test_wrong_device_rejected_and_counted(
        self, client: TestClient, db: Session, member_user: User
    ):
        response = _login(client, "member", "memberpassword123", NEW_DEVICE)
        assert response.status_code == 401
        assert response.json()["detail"] == "This account is registered to another device."
        assert get_record(db, NEW_DEVICE).login_attempts == 1

    def test_registration_block_does_not_stop_login(
        self, client: TestClient, db: Session, member_user: User
    ):
        for _ in range(6):
            client.post(
                "/api/auth/register", json=_registration(username="member", device_id=MEMBER_DEVICE)
            )
        assert get_record(db, MEMBER_DEVICE).is_blocked is True

        response = _login(client, "member", "memberpassword123", MEMBER_DEVICE)
        assert response.status_code == 200

    def test_unbound_account_binds_on_first_login(self, client: TestClient, db: Session):
        create_user(db, "legacy", "legacypassword123", email="legacy@example.com")

        response = client.post(
            "/api/auth/login",
            data={"username": "legacy", "password": "legacypassword123", "device_id": NEW_DEVICE},
            headers={"User-Agent": IPHONE_UA},
        )
        assert response.status_code == 200

        user = get_user_by_username(db, "legacy")
        assert user.device_id == NEW_DEVICE
        assert user.device_platform == "iOS"

        response = _login(client, "legacy", "legacypassword123", "another-device")
        assert response.status_code == 401

    def test_unbound_account_not_bound_to_unknown_device(self, client: TestClient, db: Session):
        create_user(db, "legacy", "legacypassword123")
        response = _login(client, "legacy", "legacypassword123", UNKNOWN_DEVICE_ID)
        assert response.status_code == 200
        assert get_user_by_username(db, "legacy").device_id is None

    def test_unbound_account_cannot_take_owned_device(
        self, client: TestClient, member_user: User, db: Session
    ):
        create_user(db, "legacy", "legacypassword123")
        response = _login(client, "legacy", "legacypassword123", MEMBER_DEVICE)
        assert response.status_code == 403

    def test_concurrent_bind_to_owned_device(
        self, client: TestClient, member_user: User, db: Session
    ):
        create_user(db, "legacy", "legacypassword123")
        with patch("devicegate.api.auth.get_user_by_device_id", return_value=None):
            response = _login(client, "legacy", "legacypassword123", MEMBER_DEVICE)
        assert response.status_code == 403
        assert "one account" in response.json()["detail"]
        assert get_user_by_username(db, "legacy").device_id is None

    def test_unknown_device_failures_not_tracked(self, client: TestClient, db: Session):
        create_user(db, "legacy", "legacypassword123")
        for _ in range(6):
            response = _login(client, "legacy", "wrongpassword", UNKNOWN_DEVICE_ID)
            assert response.status_code == 401
        assert get_record(db, UNKNOWN_DEVICE_ID) is None

        response = _login(client, "legacy", "legacypassword123", UNKNOWN_DEVICE_ID)
        assert response.status_code == 200

    def test_inactive_user(self, client: TestClient, db: Session, member_user: User):
        member_user.is_active = False
        db.commit()
        response = _login(client, "member", "memberpassword123", MEMBER_DEVICE)
        assert response.status_code == 400

    def test_missing_device_id(self, client: TestClient, member_user: User):
        response = client.post(
            "/api/auth/login", data={"username": "member", "password": "memberpassword123"}
        )
        assert response.status_code == 422


class TestMe:
    def test_me(self, client: TestClient, member_headers: dict[str, str]):
        response = client.get("/api/auth/me", headers=member_headers)
        assert response.status_code == 200
        assert response.json()["username"] == "member"

    def test_me_requires_token(self, client: TestClient):
        assert client.get("/api/auth/me").status_code == 401

    def test_me_rejects_garbage_token(self, client: TestClient):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401
