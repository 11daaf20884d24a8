import pytest

from ahrom.auth import create_session, verify_jwt_token
from ahrom.models import AuditLog, OtpCode, User
from ahrom.roles import get_user_roles
from ahrom.services import otp_service, sms_service, whitelist_service

PHONE = "09121234567"


@pytest.fixture
def sent_sms(monkeypatch):
    """Capture outgoing OTP messages and pin the generated code"""
    sent = []

    async def fake_send(to_phone, code, purpose=None):
        sent.append({"to": to_phone, "code": code, "purpose": purpose})

    monkeypatch.setattr(sms_service, "send_otp_sms", fake_send)
    monkeypatch.setattr(otp_service, "generate_otp", lambda: "12345")
    return sent


def test_send_otp_for_registration(client, test_db, sent_sms):
    response = client.post("/auth/send-otp", json={"phone_number": "+989121234567", "is_registration": True})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["user_exists"] is False
    assert data["expires_in"] == 90
    assert sent_sms == [{"to": PHONE, "code": "12345", "purpose": None}]
    assert test_db.query(OtpCode).filter(OtpCode.phone_number == PHONE).count() == 1


def test_send_otp_login_for_unknown_phone(client, test_db, sent_sms):
    response = client.post("/auth/send-otp", json={"phone_number": PHONE})

    assert response.status_code == 200
    assert response.json()["success"] is False
    assert response.json()["user_exists"] is False
    assert sent_sms == []


def test_send_otp_registration_for_existing_phone(client, make_user, sent_sms):
    make_user("customer", phone_number=PHONE)

    response = client.post("/auth/send-otp", json={"phone_number": PHONE, "is_registration": True})

    assert response.json()["success"] is False
    assert response.json()["user_exists"] is True
    assert sent_sms == []


def test_send_otp_rejects_invalid_phone(client, sent_sms):
    response = client.post("/auth/send-otp", json={"phone_number": "12345"})
    assert response.status_code == 400


def test_send_otp_rate_limit(client, make_user, sent_sms):
    make_user("customer", phone_number=PHONE)
    for _ in range(3):
        assert client.post("/auth/send-otp", json={"phone_number": PHONE}).status_code == 200

    response = client.post("/auth/send-otp", json={"phone_number": PHONE})
    assert response.status_code == 429
    assert len(sent_sms) == 3


def test_sms_failure_stores_nothing(client, test_db, make_user, monkeypatch):
    make_user("customer", phone_number=PHONE)

    async def failing_send(to_phone, code, purpose=None):
        raise sms_service.SmsDeliveryError("boom")

    monkeypatch.setattr(sms_service, "send_otp_sms", failing_send)

    response = client.post("/auth/send-otp", json={"phone_number": PHONE})

    assert response.status_code == 500
    assert test_db.query(OtpCode).count() == 0


def test_register_with_whitelisted_roles(client, test_db, sent_sms):
    whitelist_service.add_entry(test_db, PHONE, allowed_roles=["sales_manager"])
    client.post("/auth/send-otp", json={"phone_number": PHONE, "is_registration": True})

    response = client.post(
        "/auth/verify-otp",
        json={"phone_number": PHONE, "code": "۱۲۳۴۵", "full_name": "علی رضایی", "is_registration": True},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["is_new_user"] is True
    assert data["token_type"] == "bearer"
    assert data["user"]["roles"] == ["customer", "sales_manager"]
    assert data["user"]["primary_view"] == "sales_manager"

    user = test_db.query(User).filter(User.phone_number == PHONE).one()
    assert user.full_name == "علی رضایی"
    assert get_user_roles(test_db, user.id) == {"customer", "sales_manager"}
    assert test_db.query(AuditLog).filter(AuditLog.action == "user_registered").count() == 1


def test_login_returns_session_and_code_is_single_use(client, make_user, sent_sms):
    user = make_user("contractor", phone_number=PHONE)
    client.post("/auth/send-otp", json={"phone_number": PHONE})

    response = client.post("/auth/verify-otp", json={"phone_number": PHONE, "code": "12345"})
    assert response.status_code == 200
    data = response.json()
    assert data["is_new_user"] is False
    assert data["user"]["id"] == user.id
    assert verify_jwt_token(data["access_token"])["sub"] == str(user.id)

    again = client.post("/auth/verify-otp", json={"phone_number": PHONE, "code": "12345"})
    assert again.status_code == 400


def test_verify_wrong_code(client, make_user, sent_sms):
    make_user("customer", phone_number=PHONE)
    client.post("/auth/send-otp", json={"phone_number": PHONE})

    response = client.post("/auth/verify-otp", json={"phone_number": PHONE, "code": "54321"})
    assert response.status_code == 400


def test_verify_rejects_malformed_code(client, sent_sms):
    response = client.post("/auth/verify-otp", json={"phone_number": PHONE, "code": "12"})
    assert response.status_code == 400


def test_verify_login_for_unknown_phone(client, test_db, sent_sms):
    otp_service.store_code(test_db, PHONE, "12345")

    response = client.post("/auth/verify-otp", json={"phone_number": PHONE, "code": "12345"})

    assert response.status_code == 404
    # The code was not consumed
    assert otp_service.verify_code(test_db, PHONE, "12345")


def test_registration_requires_full_name(client, test_db, sent_sms):
    otp_service.store_code(test_db, PHONE, "12345")

    response = client.post(
        "/auth/verify-otp", json={"phone_number": PHONE, "code": "12345", "is_registration": True}
    )
    assert response.status_code == 400


def test_inactive_user_cannot_log_in(client, test_db, make_user, sent_sms):
    make_user("customer", phone_number=PHONE, is_active=False)
    otp_service.store_code(test_db, PHONE, "12345")

    response = client.post("/auth/verify-otp", json={"phone_number": PHONE, "code": "12345"})
    assert response.status_code == 403


def test_check_whitelist(client, test_db):
    whitelist_service.add_entry(test_db, PHONE)

    assert client.post("/auth/check-whitelist", json={"phone_number": "9121234567"}).json() == {
        "success": True,
        "is_whitelisted": True,
    }
    assert client.post("/auth/check-whitelist", json={"phone_number": "09120000000"}).json()[
        "is_whitelisted"
    ] is False


def test_refresh_token(client, make_user, test_db):
    user = make_user("customer")
    session = create_session(test_db, user)

    response = client.post("/auth/refresh", json={"refresh_token": session["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["user"]["id"] == user.id

    # An access token is not a refresh token
    response = client.post("/auth/refresh", json={"refresh_token": session["access_token"]})
    assert response.status_code == 401


def test_protected_endpoint_requires_token(client):
    assert client.get("/me").status_code == 401
    assert client.get("/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_me(client, make_user, auth_headers):
    user = make_user("customer", "finance_manager")

    data = client.get("/me", headers=auth_headers(user)).json()

    assert data["id"] == user.id
    assert data["roles"] == ["finance_manager", "customer"]
    assert data["primary_view"] == "finance_manager"
    assert data["is_impersonating"] is False

    assert client.get("/roles/check/finance_manager", headers=auth_headers(user)).json()["has_role"] is True
    assert client.get("/roles/check/admin", headers=auth_headers(user)).json()["has_role"] is False
