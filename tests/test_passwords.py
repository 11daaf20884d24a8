import pytest

from ahrom.auth import verify_jwt_token
from ahrom.models import AuditLog, OtpCode
from ahrom.services import otp_service, password_service

PHONE = "09121234567"


@pytest.fixture
def member(make_user):
    return make_user("customer", phone_number=PHONE)


@pytest.fixture
def with_password(test_db, member):
    member.password_hash = password_service.hash_password("secret123")
    test_db.commit()
    return member


def test_hashes_are_salted_and_verifiable():
    first = password_service.hash_password("secret123")
    second = password_service.hash_password("secret123")

    assert first != second
    assert password_service.verify_password("secret123", first)
    assert not password_service.verify_password("secret124", first)
    assert not password_service.verify_password("secret123", "not-a-hash")
    assert not password_service.verify_password("secret123", None)


def test_check_has_password(client, with_password, make_user):
    make_user("customer", phone_number="09127654321")

    assert client.post("/auth/password/check", json={"phone_number": PHONE}).json()["has_password"] is True
    assert client.post("/auth/password/check", json={"phone_number": "09127654321"}).json()["has_password"] is False
    assert client.post("/auth/password/check", json={"phone_number": "09350000000"}).json()["has_password"] is False


def test_set_first_password(client, test_db, member, auth_headers):
    response = client.post("/auth/password/set", json={"new_password": "secret123"}, headers=auth_headers(member))

    assert response.status_code == 200
    test_db.refresh(member)
    assert password_service.verify_password("secret123", member.password_hash)
    assert member.password_set_at is not None
    audit = test_db.query(AuditLog).filter(AuditLog.action == "password_set").one()
    assert audit.meta == {"replaced": False}


def test_short_password_is_rejected(client, member, auth_headers):
    response = client.post("/auth/password/set", json={"new_password": "12345"}, headers=auth_headers(member))

    assert response.status_code == 400
    assert response.json()["detail"] == "رمز عبور باید حداقل ۶ کاراکتر باشد"


def test_change_requires_current_password(client, test_db, with_password, auth_headers):
    headers = auth_headers(with_password)

    missing = client.post("/auth/password/set", json={"new_password": "another1"}, headers=headers)
    assert missing.status_code == 400

    wrong = client.post(
        "/auth/password/set", json={"new_password": "another1", "current_password": "nope123"}, headers=headers
    )
    assert wrong.status_code == 400

    changed = client.post(
        "/auth/password/set", json={"new_password": "another1", "current_password": "secret123"}, headers=headers
    )
    assert changed.status_code == 200
    test_db.refresh(with_password)
    assert password_service.verify_password("another1", with_password.password_hash)


def test_set_password_needs_a_session(client):
    assert client.post("/auth/password/set", json={"new_password": "secret123"}).status_code == 401


def test_impersonator_cannot_set_password(client, test_db, member, admin, auth_headers):
    response = client.post(
        "/auth/password/set",
        json={"new_password": "secret123"},
        headers=auth_headers(member, impersonator_id=admin.id),
    )

    assert response.status_code == 403
    test_db.refresh(member)
    assert member.password_hash is None


def test_login_with_password(client, with_password):
    response = client.post("/auth/password/login", json={"phone_number": "+989121234567", "password": "secret123"})

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert verify_jwt_token(data["access_token"])["sub"] == str(with_password.id)


@pytest.mark.parametrize(
    "phone, password, detail",
    [
        ("09350000000", "secret123", "شماره تلفن یافت نشد"),
        (PHONE, "wrong-one", "رمز عبور اشتباه است"),
    ],
)
def test_login_failures(client, with_password, phone, password, detail):
    response = client.post("/auth/password/login", json={"phone_number": phone, "password": password})

    assert response.status_code == 400
    assert response.json()["detail"] == detail


def test_login_without_a_password_points_to_otp(client, member):
    response = client.post("/auth/password/login", json={"phone_number": PHONE, "password": "secret123"})

    assert response.status_code == 400
    assert "کد تایید" in response.json()["detail"]


def test_inactive_user_cannot_log_in(client, test_db, with_password):
    with_password.is_active = False
    test_db.commit()

    response = client.post("/auth/password/login", json={"phone_number": PHONE, "password": "secret123"})
    assert response.status_code == 403


def test_reset_with_login_code(client, test_db, with_password):
    otp_service.store_code(test_db, PHONE, "12345", otp_service.PURPOSE_LOGIN)

    response = client.post(
        "/auth/password/reset", json={"phone_number": PHONE, "code": "۱۲۳۴۵", "new_password": "fresh-pass"}
    )

    assert response.status_code == 200
    test_db.refresh(with_password)
    assert password_service.verify_password("fresh-pass", with_password.password_hash)
    assert test_db.query(OtpCode).filter(OtpCode.verified.is_(False)).count() == 0
    assert test_db.query(AuditLog).filter(AuditLog.action == "password_reset").count() == 1


def test_reset_with_wrong_code(client, test_db, with_password):
    otp_service.store_code(test_db, PHONE, "12345", otp_service.PURPOSE_LOGIN)

    response = client.post(
        "/auth/password/reset", json={"phone_number": PHONE, "code": "54321", "new_password": "fresh-pass"}
    )

    assert response.status_code == 400
    test_db.refresh(with_password)
    assert password_service.verify_password("secret123", with_password.password_hash)


def test_reset_rejects_short_password_before_using_the_code(client, test_db, with_password):
    otp_service.store_code(test_db, PHONE, "12345", otp_service.PURPOSE_LOGIN)

    response = client.post("/auth/password/reset", json={"phone_number": PHONE, "code": "12345", "new_password": "123"})

    assert response.status_code == 400
    assert otp_service.verify_code(test_db, PHONE, "12345", otp_service.PURPOSE_LOGIN) is True
