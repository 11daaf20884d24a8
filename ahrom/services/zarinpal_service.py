"""
ZarinPal payment gateway (REST v4)

Amounts are stored in Toman and sent to the gateway in Rial.
"""

import logging
from datetime import datetime
from typing import Optional

import httpx
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..config import PAYMENT_CALLBACK_URL, ZARINPAL_API_BASE, ZARINPAL_MERCHANT_ID, ZARINPAL_STARTPAY_URL
from ..models import AuditLog, Order, User
from . import order_sms_service, order_status
from .audit_service import record_audit

logger = logging.getLogger(__name__)

CODE_SUCCESS = 100
CODE_ALREADY_VERIFIED = 101
RIAL_PER_TOMAN = 10


def to_rial(amount_toman: int) -> int:
    return int(amount_toman) * RIAL_PER_TOMAN


async def _post(endpoint: str, payload: dict) -> dict:
    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                f"{ZARINPAL_API_BASE}/{endpoint}",
                json=payload,
                headers={"Accept": "application/json"},
                timeout=15.0,
            )
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"ZarinPal {endpoint} request failed: {e}")
        raise HTTPException(status_code=502, detail="Payment gateway unavailable") from e

    logger.info(f"ZarinPal {endpoint} response status: {resp.status_code}")
    return data if isinstance(data, dict) else {}


def _gateway_code(data: dict) -> Optional[int]:
    inner = data.get("data")
    if isinstance(inner, dict):
        return inner.get("code")
    return None


async def create_payment_request(
    db: Session, order_id: int, user: User, description: Optional[str] = None
) -> dict:
    """
    Start a gateway payment for a payable, unpaid order owned by `user`

    Returns:
        Dict with success, payment_url and authority
    """
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.customer_id != user.id:
        raise HTTPException(status_code=403, detail="Order does not belong to user")
    if order.is_archived or order.status not in order_status.PAYABLE_STATUSES:
        raise HTTPException(status_code=400, detail="Order is not open for payment")
    if order.payment_confirmed_at:
        raise HTTPException(status_code=400, detail="Order has already been paid")
    if not order.payment_amount or order.payment_amount <= 0:
        raise HTTPException(status_code=400, detail="Order has no payable amount")

    data = await _post(
        "request.json",
        {
            "merchant_id": ZARINPAL_MERCHANT_ID,
            "amount": to_rial(order.payment_amount),
            "description": description or "پرداخت سفارش",
            "callback_url": f"{PAYMENT_CALLBACK_URL}?order_id={order.id}",
            "metadata": {"order_id": str(order.id), "user_id": str(user.id)},
        },
    )

    if _gateway_code(data) != CODE_SUCCESS:
        logger.error(f"ZarinPal request rejected for order {order.id}: {data.get('errors')}")
        raise HTTPException(status_code=502, detail=f"ZarinPal error: {data.get('errors') or 'Unknown error'}")

    authority = data["data"]["authority"]
    record_audit(
        db,
        action="payment_requested",
        entity="payment",
        entity_id=order.id,
        actor_user_id=user.id,
        meta={"authority": authority, "amount": order.payment_amount},
        commit=True,
    )
    logger.info(f"Payment requested for order {order.id}, authority={authority}")
    return {
        "success": True,
        "payment_url": f"{ZARINPAL_STARTPAY_URL}/{authority}",
        "authority": authority,
    }


def has_payment_request(db: Session, order_id: int) -> bool:
    """Whether a gateway payment was ever started for the order"""
    return (
        db.query(AuditLog.id)
        .filter(
            AuditLog.action == "payment_requested",
            AuditLog.entity == "payment",
            AuditLog.entity_id == str(order_id),
        )
        .first()
        is not None
    )


async def verify_order_payment(
    db: Session, order_id: Optional[int], authority: Optional[str], gateway_status: Optional[str]
) -> dict:
    """
    Settle a gateway callback

    Only unarchived orders in a payable status are settled. Settlement stamps
    the payment fields; a completed order also moves to paid, any earlier
    status is left for the execution flow to advance.

    Returns:
        Dict with success, status (success, already_verified, cancelled or
        failed), order_id and ref_id when paid
    """
    if not authority or not order_id:
        raise HTTPException(status_code=400, detail="Missing required parameters")

    if gateway_status != "OK":
        logger.info(f"Payment for order {order_id} cancelled by the customer")
        return {"success": False, "status": "cancelled", "order_id": order_id}

    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    if order.payment_confirmed_at:
        logger.info(f"Payment for order {order.id} was already settled")
        return {"success": True, "status": "already_verified", "order_id": order.id}

    if order.is_archived or order.status not in order_status.PAYABLE_STATUSES:
        error = "Order is not payable"
        logger.warning(f"Refusing to settle order {order.id} in status {order.status} (archived={order.is_archived})")
        record_audit(
            db,
            action="payment_failed",
            entity="payment",
            entity_id=order.id,
            meta={"authority": authority, "error": error, "order_status": order.status},
            commit=True,
        )
        return {"success": False, "status": "failed", "order_id": order.id, "error": error}

    data = await _post(
        "verify.json",
        {
            "merchant_id": ZARINPAL_MERCHANT_ID,
            "amount": to_rial(order.payment_amount or 0),
            "authority": authority,
        },
    )
    code = _gateway_code(data)

    if code == CODE_SUCCESS:
        ref_id = str(data["data"].get("ref_id"))
        previous = order.status
        try:
            order.payment_confirmed_at = datetime.utcnow()
            order.payment_method = "zarinpal"
            order.transaction_reference = ref_id
            if previous == order_status.COMPLETED:
                order.status = order_status.PAID
            record_audit(
                db,
                action="payment_verified",
                entity="payment",
                entity_id=order.id,
                meta={
                    "authority": authority,
                    "ref_id": ref_id,
                    "amount": order.payment_amount,
                    "from": previous,
                    "to": order.status,
                },
            )
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to record payment for order {order.id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to record payment") from e

        db.refresh(order)
        logger.info(f"Payment verified for order {order.id}, ref_id={ref_id}, status={order.status}")
        await order_sms_service.send_status_sms(db, order, order_sms_service.PAID)
        await order_sms_service.send_ceo_sms(order, order_sms_service.CEO_PAYMENT)
        return {"success": True, "status": "success", "order_id": order.id, "ref_id": ref_id}

    if code == CODE_ALREADY_VERIFIED:
        return {"success": True, "status": "already_verified", "order_id": order.id}

    errors = data.get("errors") or "Payment verification failed"
    logger.error(f"Payment verification failed for order {order.id}: {errors}")
    record_audit(
        db,
        action="payment_failed",
        entity="payment",
        entity_id=order.id,
        meta={"authority": authority, "error": errors},
        commit=True,
    )
    return {"success": False, "status": "failed", "order_id": order.id, "error": errors}
