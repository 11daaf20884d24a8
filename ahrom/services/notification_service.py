"""
In-app notifications and the manager fan-out for new orders.

Every sender takes a `suppressed` flag. Actions performed by an admin who is
impersonating another user pass it so the impersonated session never creates
notifications or push relays on that user's behalf.
"""

import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..models import Notification, Order
from ..roles import MANAGER_ROLES, user_ids_with_roles
from ..shared.validators import format_iran_phone
from . import push_service

logger = logging.getLogger(__name__)

MESSAGE_NEW_ORDER = "new_order"
MESSAGE_EXPERT_PRICE_CONFIRMED = "expert_price_confirmed"

NOTIFICATION_TYPES = {"info", "success", "warning", "error"}


def create_notification(
    db: Session,
    user_id: int,
    title: str,
    body: str,
    link: Optional[str] = None,
    notification_type: str = "info",
    suppressed: bool = False,
) -> Optional[Notification]:
    created = notify_users(db, [user_id], title, body, link, notification_type, suppressed)
    return created[0] if created else None


def notify_users(
    db: Session,
    user_ids: Iterable[int],
    title: str,
    body: str,
    link: Optional[str] = None,
    notification_type: str = "info",
    suppressed: bool = False,
) -> list[Notification]:
    """Create one notification per distinct recipient and commit them"""
    recipients = sorted(set(user_ids))
    if suppressed:
        logger.info(f"Notification '{title}' suppressed for {len(recipients)} recipient(s) (impersonation)")
        return []
    if not recipients:
        return []

    if notification_type not in NOTIFICATION_TYPES:
        notification_type = "info"

    rows = [
        Notification(user_id=uid, title=title, body=body, link=link, type=notification_type)
        for uid in recipients
    ]
    db.add_all(rows)
    db.commit()
    logger.info(f"Created '{title}' notification for {len(rows)} user(s)")
    return rows


def manager_message(order: Order, message_type: str) -> tuple[str, str, str]:
    """Title, body and link for the manager notification of an order"""
    customer = order.customer
    customer_name = customer.full_name if customer and customer.full_name else None

    if message_type == MESSAGE_EXPERT_PRICE_CONFIRMED:
        title = f"✓ تایید قیمت سفارش {order.code}"
        body = (
            f"مشتری {customer_name or 'ناشناس'} قیمت سفارش را تایید کرد. "
            "سفارش آماده تایید نهایی و اجرا است."
        )
        link = f"/executive/pending?orderId={order.id}"
    else:
        title = f"سفارش جدید {order.code}"
        phone = f"({format_iran_phone(customer.phone_number)})" if customer else ""
        body = f"سفارش جدید از {customer_name or 'مشتری'} {phone} ثبت شد. {order.service_type or ''}"
        body = " ".join(body.split())
        link = "/sales/pending"

    return title, body, link


async def notify_managers_new_order(
    db: Session,
    order: Order,
    message_type: str = MESSAGE_NEW_ORDER,
    suppressed: bool = False,
) -> dict:
    """
    Notify every manager-level user about an order

    Returns:
        Dict with managers_notified, in_app_created and push_sent
    """
    result = {"managers_notified": 0, "in_app_created": False, "push_sent": False}
    if suppressed:
        logger.info(f"Manager notification for {order.code} suppressed (impersonation)")
        return result

    manager_ids = user_ids_with_roles(db, MANAGER_ROLES)
    if not manager_ids:
        logger.info("No managers found to notify")
        return result

    title, body, link = manager_message(order, message_type)
    created = notify_users(db, manager_ids, title, body, link, "info")
    result["managers_notified"] = len(manager_ids)
    result["in_app_created"] = bool(created)

    push = await push_service.send_push(manager_ids, title, body, link)
    result["push_sent"] = push["pushed"]
    if push["error"]:
        logger.warning(f"Manager push for {order.code} failed: {push['error']}")

    logger.info(f"Notified {len(manager_ids)} manager(s) about {order.code} ({message_type})")
    return result


def list_notifications(db: Session, user_id: int, unread_only: bool = False, limit: int = 50):
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(db: Session, user_id: int) -> int:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read_at.is_(None))
        .count()
    )
