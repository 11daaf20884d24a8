"""
ZarinPal payment endpoints: starting a payment and the gateway callback
"""

import json
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import FRONTEND_URL
from ..database import get_db
from ..models import User
from ..services import zarinpal_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


class PaymentRequest(BaseModel):
    order_id: int
    description: Optional[str] = None


class PaymentVerifyRequest(BaseModel):
    order_id: Optional[int] = None
    authority: Optional[str] = None
    status: Optional[str] = None


def result_page_url(result: dict) -> str:
    params = {"status": result.get("status", "failed")}
    if result.get("order_id"):
        params["order_id"] = result["order_id"]
    if result.get("ref_id"):
        params["ref_id"] = result["ref_id"]
    return f"{FRONTEND_URL}/payment/result?{urlencode(params)}"


def redirect_html(url: str) -> str:
    """Small page that sends the browser back to the frontend"""
    target = json.dumps(url)
    return (
        "<!DOCTYPE html><html lang=\"fa\" dir=\"rtl\"><head><meta charset=\"utf-8\">"
        "<title>در حال انتقال...</title></head><body>"
        "<p>در حال انتقال به سایت...</p>"
        f"<script>window.location.replace({target});</script>"
        "</body></html>"
    )


def _order_id(raw: Optional[str]) -> Optional[int]:
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


@router.post("/request")
async def request_payment(
    payload: PaymentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a gateway payment for an approved order"""
    return await zarinpal_service.create_payment_request(
        db, payload.order_id, current_user, payload.description
    )


@router.get("/verify", response_class=HTMLResponse)
async def verify_payment_callback(
    Authority: Optional[str] = None,
    Status: Optional[str] = None,
    order_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Gateway redirect target. Always answers with a redirect page."""
    try:
        result = await zarinpal_service.verify_order_payment(db, _order_id(order_id), Authority, Status)
    except HTTPException as e:
        logger.error(f"Payment callback for order {order_id} failed: {e.detail}")
        result = {"success": False, "status": "failed", "order_id": _order_id(order_id)}

    return HTMLResponse(content=redirect_html(result_page_url(result)))


@router.post("/verify")
async def verify_payment(payload: PaymentVerifyRequest, db: Session = Depends(get_db)):
    return await zarinpal_service.verify_order_payment(
        db, payload.order_id, payload.authority, payload.status
    )
