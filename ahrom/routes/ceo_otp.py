"""
Step-up confirmation by the CEO for destructive module actions.

The code is always sent to the configured CEO phone, never to the caller.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import AuthContext, require_roles
from ..config import CEO_PHONE_NUMBER, OTP_LENGTH, OTP_TTL_SECONDS
from ..database import get_db
from ..roles import STAFF_ROLES
from ..services import otp_service, sms_service
from ..services.audit_service import record_audit
from ..shared.validators import normalize_otp_code

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ceo-otp", tags=["CEO OTP"])

ALLOWED_ACTIONS = {otp_service.PURPOSE_MODULE_DELETE}
DEFAULT_PURPOSE_TEXT = "حذف ماژول"

require_staff = require_roles(*STAFF_ROLES)


class CeoOtpSendRequest(BaseModel):
    action: str
    purpose: Optional[str] = None


class CeoOtpVerifyRequest(BaseModel):
    code: Optional[str] = None
    action: str


@router.post("/send")
async def send_ceo_otp(
    payload: CeoOtpSendRequest,
    ctx: AuthContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """Send a confirmation code to the CEO"""
    if payload.action not in ALLOWED_ACTIONS:
        raise HTTPException(status_code=400, detail="عملیات نامعتبر")

    if otp_service.is_rate_limited(db, CEO_PHONE_NUMBER):
        raise HTTPException(
            status_code=429,
            detail="تعداد درخواست‌های شما بیش از حد مجاز است. لطفاً ۵ دقیقه صبر کنید",
        )

    code = otp_service.generate_otp()
    try:
        await sms_service.send_otp_sms(
            CEO_PHONE_NUMBER, code, purpose=(payload.purpose or DEFAULT_PURPOSE_TEXT)[:100]
        )
    except sms_service.SmsDeliveryError as e:
        logger.error(f"CEO OTP SMS failed: {e}")
        raise HTTPException(status_code=500, detail="خطا در ارسال پیامک") from e

    otp_service.store_code(db, CEO_PHONE_NUMBER, code, otp_service.PURPOSE_MODULE_DELETE)
    logger.info(f"CEO OTP requested by user {ctx.user.id} for {payload.action}")
    return {"success": True, "message": "کد تایید به مدیرعامل ارسال شد", "expires_in": OTP_TTL_SECONDS}


@router.post("/verify")
async def verify_ceo_otp(
    payload: CeoOtpVerifyRequest,
    ctx: AuthContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """Consume the latest CEO code for the action"""
    if not payload.code:
        raise HTTPException(status_code=400, detail="کد تایید الزامی است")
    if payload.action not in ALLOWED_ACTIONS:
        raise HTTPException(status_code=400, detail="عملیات نامعتبر")

    code = normalize_otp_code(payload.code, OTP_LENGTH)
    if not code or not otp_service.verify_code(db, CEO_PHONE_NUMBER, code, payload.action):
        raise HTTPException(status_code=400, detail="کد تایید نادرست یا منقضی شده است")

    record_audit(
        db,
        action="ceo_otp_verified",
        entity="otp_codes",
        actor_user_id=ctx.user.id,
        meta={"action": payload.action},
        commit=True,
    )
    logger.info(f"CEO OTP verified for user {ctx.user.id}, action {payload.action}")
    return {"success": True, "message": "کد تایید صحیح است"}
