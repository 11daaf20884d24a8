"""
Order status text messages

Customers get a message when their order moves through the lifecycle; the
CEO gets one for every new order and every settled payment. Delivery is best
effort: a provider failure is logged and never fails the request that caused
it.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jdatetime
from sqlalchemy.orm import Session

from ..config import CEO_PHONE_NUMBER, ORDER_LINK_BASE_URL, ORDER_SMS_EXCLUDED_PHONES
from ..models import Order
from ..shared.validators import normalize_iran_phone
from . import order_status, sms_service, whitelist_service

logger = logging.getLogger(__name__)

IRAN_TZ = timezone(timedelta(hours=3, minutes=30))

SUBMITTED = "submitted"
APPROVED = "approved"
IN_PROGRESS = "in_progress"
EXECUTED = "executed"
AWAITING_PAYMENT = "awaiting_payment"
PAID = "paid"
COMPLETED = "completed"
CEO_NEW_ORDER = "ceo_new_order"
CEO_PAYMENT = "ceo_payment"

SMS_TEMPLATES = {
    SUBMITTED: (
        "سفارش {service_type} با کد {code} در تاریخ {date_time} در آدرس {address} در اهرم ثبت شد "
        "و در انتظار تایید است. مشاهده سفارش: {order_link}"
    ),
    APPROVED: (
        "سفارش {service_type} با کد {code} در تاریخ {date_time} توسط مدیر تایید شد. "
        "آدرس: {address} مشاهده سفارش: {order_link}"
    ),
    IN_PROGRESS: (
        "سفارش {service_type} با کد {code} در تاریخ {date_time} در آدرس {address} در حال اجرا است. "
        "مشاهده سفارش: {order_link}"
    ),
    EXECUTED: (
        "سفارش {service_type} با کد {code} در تاریخ {date_time} در آدرس {address} اجرا شد. "
        "مشاهده سفارش: {order_link}"
    ),
    AWAITING_PAYMENT: (
        "سفارش {service_type} با کد {code} در آدرس {address} در انتظار پرداخت است. "
        "مبلغ: {amount} تومان. تاریخ: {date_time} مشاهده سفارش: {order_link}"
    ),
    PAID: (
        "پرداخت سفارش {service_type} با کد {code} به مبلغ {amount} تومان در تاریخ {date_time} ثبت شد. "
        "آدرس: {address} مشاهده سفارش: {order_link}"
    ),
    COMPLETED: (
        "سفارش {service_type} با کد {code} در تاریخ {date_time} در آدرس {address} به پایان رسید. "
        "از اعتماد شما سپاسگزاریم. مشاهده سفارش: {order_link}"
    ),
    CEO_NEW_ORDER: (
        "📋 سفارش جدید: کد {code} - {service_type} - آدرس: {address} - مشتری: {customer_name} - "
        "تاریخ: {date_time}"
    ),
    CEO_PAYMENT: (
        "💰 پرداخت ثبت شد: کد {code} - مبلغ: {amount} تومان - مشتری: {customer_name} - "
        "تاریخ: {date_time}"
    ),
}

# Order status -> customer template. Drafts and rejections send nothing.
STATUS_TEMPLATES = {
    order_status.PENDING: SUBMITTED,
    order_status.APPROVED: APPROVED,
    order_status.IN_PROGRESS: IN_PROGRESS,
    order_status.COMPLETED: EXECUTED,
    order_status.PAID: PAID,
    order_status.CLOSED: COMPLETED,
}


def persian_date_time(moment: Optional[datetime] = None) -> str:
    """Jalali date and Tehran wall-clock time, e.g. 1403/02/12 ساعت 14:30"""
    moment = (moment or datetime.now(timezone.utc)).astimezone(IRAN_TZ)
    jalali = jdatetime.date.fromgregorian(date=moment.date())
    return f"{jalali.strftime('%Y/%m/%d')} ساعت {moment:%H:%M}"


def render_message(template_key: str, order: Order, moment: Optional[datetime] = None) -> str:
    customer = order.customer
    return SMS_TEMPLATES[template_key].format(
        code=order.code,
        service_type=order.service_type or "خدمات",
        address=order.address or "ثبت نشده",
        amount=f"{order.payment_amount:,}" if order.payment_amount else "تعیین نشده",
        customer_name=(customer.full_name if customer else None) or "مشتری",
        date_time=persian_date_time(moment),
        order_link=f"{ORDER_LINK_BASE_URL}/orders/{order.id}",
    )


def is_staff_phone(db: Session, phone: str) -> bool:
    return whitelist_service.check_whitelist(db, phone) or whitelist_service.check_whitelist(
        db, phone, whitelist_service.KIND_STAFF
    )


async def _deliver(phone: str, text: str) -> bool:
    try:
        await sms_service.send_sms(phone, text)
    except sms_service.SmsDeliveryError as e:
        logger.warning(f"Order SMS to {phone} not delivered: {e}")
        return False
    return True


async def send_customer_sms(db: Session, order: Order, template_key: str, suppressed: bool = False) -> bool:
    """
    Text the order's customer. Returns whether a message went out.

    Excluded test numbers and phones on the phone or staff whitelist are
    skipped, so staff placing orders for themselves are not texted.
    """
    if suppressed:
        logger.info(f"Order SMS {template_key} for {order.code} suppressed during impersonation")
        return False

    phone = normalize_iran_phone(order.customer.phone_number if order.customer else None)
    if not phone:
        return False
    if phone in ORDER_SMS_EXCLUDED_PHONES:
        logger.info(f"Phone {phone} is excluded from order SMS")
        return False
    if is_staff_phone(db, phone):
        logger.info(f"Phone {phone} belongs to staff, skipping order SMS")
        return False

    return await _deliver(phone, render_message(template_key, order))


async def send_status_sms(
    db: Session, order: Order, template_key: Optional[str] = None, suppressed: bool = False
) -> bool:
    """Text the customer the message for the order's current status"""
    template_key = template_key or STATUS_TEMPLATES.get(order.status)
    if not template_key:
        return False
    return await send_customer_sms(db, order, template_key, suppressed=suppressed)


async def send_ceo_sms(order: Order, template_key: str, suppressed: bool = False) -> bool:
    if suppressed:
        logger.info(f"CEO SMS {template_key} for {order.code} suppressed during impersonation")
        return False

    phone = normalize_iran_phone(CEO_PHONE_NUMBER)
    if not phone or phone in ORDER_SMS_EXCLUDED_PHONES:
        return False
    return await _deliver(phone, render_message(template_key, order))
