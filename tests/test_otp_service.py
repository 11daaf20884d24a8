import asyncio
from datetime import datetime, timedelta

import pytest

from ahrom.models import OtpCode
from ahrom.services import otp_service, sms_service

PHONE = "09121234567"


def test_generate_otp_is_five_digits():
    for _ in range(50):
        code = otp_service.generate_otp()
        assert len(code) == 5
        assert code.isdigit()
        assert code[0] != "0"


def test_code_is_single_use(test_db):
    otp_service.store_code(test_db, PHONE, "12345")

    assert otp_service.verify_code(test_db, PHONE, "12345")
    assert not otp_service.verify_code(test_db, PHONE, "12345")


def test_wrong_code_does_not_consume(test_db):
    otp_service.store_code(test_db, PHONE, "12345")

    assert not otp_service.verify_code(test_db, PHONE, "54321")
    assert otp_service.verify_code(test_db, PHONE, "12345")


def test_only_latest_code_counts(test_db):
    older = otp_service.store_code(test_db, PHONE, "11111")
    older.created_at = datetime.utcnow() - timedelta(seconds=30)
    test_db.commit()
    otp_service.store_code(test_db, PHONE, "22222")

    assert not otp_service.verify_code(test_db, PHONE, "11111")
    assert otp_service.verify_code(test_db, PHONE, "22222")


def test_expired_code_is_rejected(test_db):
    otp = otp_service.store_code(test_db, PHONE, "12345")
    otp.expires_at = datetime.utcnow() - timedelta(seconds=1)
    test_db.commit()

    assert not otp_service.verify_code(test_db, PHONE, "12345")


def test_purpose_separates_codes(test_db):
    otp_service.store_code(test_db, PHONE, "12345", otp_service.PURPOSE_MODULE_DELETE)

    assert not otp_service.verify_code(test_db, PHONE, "12345", otp_service.PURPOSE_LOGIN)
    assert otp_service.verify_code(test_db, PHONE, "12345", otp_service.PURPOSE_MODULE_DELETE)


def test_rate_limit_counts_recent_codes(test_db):
    for code in ("11111", "22222"):
        otp_service.store_code(test_db, PHONE, code)
    assert not otp_service.is_rate_limited(test_db, PHONE)

    otp_service.store_code(test_db, PHONE, "33333")
    assert otp_service.is_rate_limited(test_db, PHONE)
    assert not otp_service.is_rate_limited(test_db, "09129999999")


def test_rate_limit_window_expires(test_db):
    for code in ("11111", "22222", "33333"):
        otp_service.store_code(test_db, PHONE, code)
    for otp in test_db.query(OtpCode).all():
        otp.created_at = datetime.utcnow() - timedelta(minutes=6)
    test_db.commit()

    assert not otp_service.is_rate_limited(test_db, PHONE)


# ============================================
# SMS delivery
# ============================================


def test_otp_message_carries_web_otp_line():
    assert sms_service.otp_message("12345") == "اهرم: 12345 کد تایید\n\n@ahrom.ir #12345"
    assert sms_service.otp_message("12345", web_otp=False) == "اهرم: 12345 کد تایید"
    assert "برای حذف ماژول" in sms_service.otp_message("12345", purpose="حذف ماژول")


def test_parse_provider_response():
    assert sms_service.parse_provider_response(200, "123456789")["ok"]
    assert sms_service.parse_provider_response(200, "1;2;3")["ok"]
    assert not sms_service.parse_provider_response(200, "Request not valid")["ok"]
    assert not sms_service.parse_provider_response(500, "123")["ok"]
    assert sms_service.parse_provider_response(200, "Error: filteration")["filtered"]


def test_send_otp_sms_retries_without_web_otp_when_filtered(httpx_mock, monkeypatch):
    monkeypatch.setattr(sms_service, "PARSGREEN_API_KEY", "key")
    httpx_mock.add_response(text="Error: filteration")
    httpx_mock.add_response(text="987654321")

    asyncio.run(sms_service.send_otp_sms(PHONE, "12345"))

    first, second = httpx_mock.get_requests()
    assert first.url.params["to"] == PHONE
    assert first.url.params["signature"] == "key"
    assert "@ahrom.ir #12345" in first.url.params["text"]
    assert "@ahrom.ir" not in second.url.params["text"]


def test_send_otp_sms_raises_on_provider_error(httpx_mock, monkeypatch):
    monkeypatch.setattr(sms_service, "PARSGREEN_API_KEY", "key")
    httpx_mock.add_response(text="Request not valid")

    with pytest.raises(sms_service.SmsDeliveryError):
        asyncio.run(sms_service.send_otp_sms(PHONE, "12345"))


def test_send_otp_sms_requires_api_key(monkeypatch):
    monkeypatch.setattr(sms_service, "PARSGREEN_API_KEY", "")

    with pytest.raises(sms_service.SmsDeliveryError):
        asyncio.run(sms_service.send_otp_sms(PHONE, "12345"))


def test_sender_falls_back_when_not_numeric(monkeypatch):
    monkeypatch.setattr(sms_service, "PARSGREEN_SENDER", "AHROM")
    assert sms_service.sender_number() == sms_service.PARSGREEN_DEFAULT_SENDER
    monkeypatch.setattr(sms_service, "PARSGREEN_SENDER", "3000123")
    assert sms_service.sender_number() == "3000123"
