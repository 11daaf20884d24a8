import asyncio
from datetime import datetime, timezone

import pytest

from ahrom.models import Order, WhitelistEntry
from ahrom.services import order_sms_service, sms_service

CEO_PHONE = "09125511494"
ORDER = {"service_type": "نصب داربست", "address": "تهران، خیابان ولیعصر"}


@pytest.fixture
def sms_enabled(monkeypatch):
    monkeypatch.setattr(sms_service, "PARSGREEN_API_KEY", "test-signature")
    monkeypatch.setattr(order_sms_service, "CEO_PHONE_NUMBER", CEO_PHONE)


def sent_to(httpx_mock):
    return [request.url.params["to"] for request in httpx_mock.get_requests()]


def test_submission_texts_customer_and_ceo(client, httpx_mock, sms_enabled, customer, auth_headers):
    httpx_mock.add_response(method="GET", text="2001")
    httpx_mock.add_response(method="GET", text="2002")

    order = client.post("/orders", json=ORDER, headers=auth_headers(customer)).json()

    assert sent_to(httpx_mock) == [customer.phone_number, CEO_PHONE]
    customer_text, ceo_text = [r.url.params["text"] for r in httpx_mock.get_requests()]
    assert f"با کد {order['code']}" in customer_text
    assert f"https://ahrom.ir/orders/{order['id']}" in customer_text
    assert "در انتظار تایید است" in customer_text
    assert ceo_text.startswith(f"📋 سفارش جدید: کد {order['code']}")
    assert "مشتری: مشتری تست" in ceo_text


def test_price_set_texts_awaiting_payment(client, httpx_mock, sms_enabled, make_user, customer, auth_headers):
    manager = make_user("sales_manager")
    for _ in range(3):
        httpx_mock.add_response(method="GET", text="2001")
    order = client.post("/orders", json=ORDER, headers=auth_headers(customer)).json()

    client.patch(
        f"/orders/{order['id']}/payment-amount", json={"payment_amount": 5000000}, headers=auth_headers(manager)
    )

    last = httpx_mock.get_requests()[-1]
    assert last.url.params["to"] == customer.phone_number
    assert "مبلغ: 5,000,000 تومان" in last.url.params["text"]


def test_staff_customers_are_not_texted(client, test_db, httpx_mock, sms_enabled, customer, auth_headers):
    test_db.add(WhitelistEntry(phone_number=customer.phone_number, kind="staff", allowed_roles=[]))
    test_db.commit()
    httpx_mock.add_response(method="GET", text="2001")

    client.post("/orders", json=ORDER, headers=auth_headers(customer))

    assert sent_to(httpx_mock) == [CEO_PHONE]


def test_excluded_phones_are_skipped(test_db, httpx_mock, sms_enabled, make_user):
    tester = make_user("customer", phone_number="09000000000")
    order = Order(code="ORD-1001", customer_id=tester.id, service_type="داربست", status="approved")
    test_db.add(order)
    test_db.commit()
    test_db.refresh(order)

    assert asyncio.run(order_sms_service.send_status_sms(test_db, order)) is False
    assert httpx_mock.get_requests() == []


def test_impersonated_changes_send_nothing(client, httpx_mock, sms_enabled, customer, admin, auth_headers):
    response = client.post("/orders", json=ORDER, headers=auth_headers(customer, impersonator_id=admin.id))

    assert response.status_code == 201
    assert httpx_mock.get_requests() == []


def test_provider_failure_does_not_fail_the_request(client, httpx_mock, sms_enabled, customer, auth_headers):
    httpx_mock.add_response(method="GET", text="Request not valid")
    httpx_mock.add_response(method="GET", status_code=500, text="error")

    response = client.post("/orders", json=ORDER, headers=auth_headers(customer))

    assert response.status_code == 201
    assert response.json()["status"] == "pending"


def test_rejection_sends_no_status_text(test_db, httpx_mock, sms_enabled, customer):
    order = Order(code="ORD-1001", customer_id=customer.id, service_type="داربست", status="rejected")
    test_db.add(order)
    test_db.commit()
    test_db.refresh(order)

    assert asyncio.run(order_sms_service.send_status_sms(test_db, order)) is False
    assert httpx_mock.get_requests() == []


def test_message_defaults_and_jalali_date(test_db, customer):
    order = Order(code="ORD-1001", customer_id=customer.id, service_type="داربست", status="paid")
    test_db.add(order)
    test_db.commit()
    test_db.refresh(order)
    moment = datetime(2024, 3, 19, 21, 0, tzinfo=timezone.utc)

    text = order_sms_service.render_message(order_sms_service.PAID, order, moment)

    assert "به مبلغ تعیین نشده تومان" in text
    assert "آدرس: ثبت نشده" in text
    assert "در تاریخ 1403/01/01 ساعت 00:30" in text
