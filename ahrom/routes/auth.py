"""
Phone + OTP authentication
Handles OTP sending, verification (login and registration), whitelist lookup,
token refresh and the optional password login
"""

import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import AuthContext, REFRESH_TOKEN_TYPE, create_session, decode_token, get_auth_context, load_active_user
from ..config import OTP_LENGTH, OTP_TTL_SECONDS
from ..database import get_db
from ..models import User
from ..rate_limiter import create_rate_limiter
from ..roles import CUSTOMER, grant_role
from ..services import otp_service, password_service, sms_service, whitelist_service
from ..services.audit_service import record_audit
from ..shared.validators import normalize_otp_code, validate_full_name, validate_iran_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

rate_limit_password_login = create_rate_limiter(
    limit=int(os.getenv("PASSWORD_LOGIN_RPM", "10")),
    window_seconds=60,
    key_prefix="password_login",
)


class SendOtpRequest(BaseModel):
    phone_number: str
    is_registration: bool = False


class VerifyOtpRequest(BaseModel):
    phone_number: str
    code: str
    full_name: Optional[str] = None
    is_registration: bool = False


class CheckWhitelistRequest(BaseModel):
    phone_number: str


class RefreshRequest(BaseModel):
    refresh_token: str


class PasswordLoginRequest(BaseModel):
    phone_number: str
    password: str


class PasswordSetRequest(BaseModel):
    new_password: str
    current_password: Optional[str] = None


class PasswordResetRequest(BaseModel):
    phone_number: str
    code: str
    new_password: str


def _phone_or_400(phone_number: str) -> str:
    try:
        return validate_iran_phone(phone_number)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def _find_user(db: Session, phone: str) -> Optional[User]:
    return db.query(User).filter(User.phone_number == phone).first()


def _register_user(db: Session, phone: str, full_name: Optional[str]) -> User:
    """Create a user holding the whitelist roles for the phone plus customer"""
    roles = whitelist_service.whitelisted_roles(db, phone)
    try:
        user = User(phone_number=phone, full_name=full_name)
        db.add(user)
        db.flush()
        for role in dict.fromkeys(roles + [CUSTOMER]):
            grant_role(db, user.id, role)
        record_audit(
            db,
            action="user_registered",
            entity="users",
            entity_id=user.id,
            actor_user_id=user.id,
            meta={"roles": sorted(set(roles + [CUSTOMER]))},
        )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Concurrent registration for {phone}: {e}")
        raise HTTPException(status_code=409, detail="این شماره قبلاً در سامانه ثبت شده است") from e

    db.refresh(user)
    logger.info(f"Registered user {user.id} with roles {sorted(set(roles + [CUSTOMER]))}")
    return user


@router.post("/send-otp")
async def send_otp(payload: SendOtpRequest, db: Session = Depends(get_db)):
    """Send a login or registration code by SMS"""
    phone = _phone_or_400(payload.phone_number)

    if otp_service.is_rate_limited(db, phone):
        raise HTTPException(
            status_code=429,
            detail="تعداد درخواست‌های شما بیش از حد مجاز است. لطفاً 5 دقیقه صبر کنید",
        )

    user_exists = _find_user(db, phone) is not None
    if not payload.is_registration and not user_exists:
        return {"success": False, "error": "این شماره در سامانه ثبت نشده است", "user_exists": False}
    if payload.is_registration and user_exists:
        return {"success": False, "error": "این شماره قبلاً در سامانه ثبت شده است", "user_exists": True}

    code = otp_service.generate_otp()
    try:
        await sms_service.send_otp_sms(phone, code)
    except sms_service.SmsDeliveryError as e:
        logger.error(f"OTP SMS to {phone} failed: {e}")
        raise HTTPException(status_code=500, detail="خطا در ارسال پیامک. لطفا دوباره تلاش کنید.") from e

    otp_service.store_code(db, phone, code, otp_service.PURPOSE_LOGIN)
    return {"success": True, "user_exists": user_exists, "expires_in": OTP_TTL_SECONDS}


@router.post("/verify-otp")
async def verify_otp(payload: VerifyOtpRequest, db: Session = Depends(get_db)):
    """Consume an OTP and open a session, registering the user when needed"""
    phone = _phone_or_400(payload.phone_number)

    code = normalize_otp_code(payload.code, OTP_LENGTH)
    if not code:
        raise HTTPException(status_code=400, detail=f"کد تایید باید دقیقاً {OTP_LENGTH} رقم باشد")

    user = _find_user(db, phone)
    full_name = None
    if user is None:
        if not payload.is_registration:
            raise HTTPException(status_code=404, detail="این شماره در سامانه ثبت نشده است")
        try:
            full_name = validate_full_name(payload.full_name)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

    if not otp_service.verify_code(db, phone, code, otp_service.PURPOSE_LOGIN):
        raise HTTPException(status_code=400, detail="کد تایید نامعتبر یا منقضی شده است")

    is_new_user = user is None
    if is_new_user:
        user = _register_user(db, phone, full_name)
    elif not user.is_active:
        raise HTTPException(status_code=403, detail="حساب کاربری غیرفعال است")

    logger.info(f"User {user.id} signed in via OTP (new={is_new_user})")
    return {"success": True, "is_new_user": is_new_user, **create_session(db, user)}


@router.post("/check-whitelist")
async def check_whitelist(payload: CheckWhitelistRequest, db: Session = Depends(get_db)):
    """Whether a phone is whitelisted. Never exposes the list or its roles."""
    phone = _phone_or_400(payload.phone_number)
    return {"success": True, "is_whitelisted": whitelist_service.check_whitelist(db, phone)}


@router.post("/refresh")
async def refresh_session(payload: RefreshRequest, db: Session = Depends(get_db)):
    """Exchange a refresh token for a new token pair"""
    claims = decode_token(payload.refresh_token, REFRESH_TOKEN_TYPE)
    user = load_active_user(db, claims["sub"])
    impersonator_id = claims.get("imp")
    return create_session(db, user, impersonator_id=int(impersonator_id) if impersonator_id else None)


@router.post("/password/check")
async def check_has_password(payload: CheckWhitelistRequest, db: Session = Depends(get_db)):
    """Whether the phone can sign in with a password instead of a code"""
    phone = _phone_or_400(payload.phone_number)
    user = _find_user(db, phone)
    return {"success": True, "has_password": bool(user and password_service.has_password(user))}


@router.post("/password/login")
async def login_with_password(
    payload: PasswordLoginRequest,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_password_login),
):
    phone = _phone_or_400(payload.phone_number)
    user = _find_user(db, phone)
    if user is None:
        raise HTTPException(status_code=400, detail="شماره تلفن یافت نشد")
    if not password_service.has_password(user):
        raise HTTPException(status_code=400, detail="این حساب رمز عبور ندارد. لطفاً از کد تایید استفاده کنید.")
    if not password_service.verify_password(payload.password, user.password_hash):
        logger.warning(f"Wrong password for user {user.id}")
        raise HTTPException(status_code=400, detail="رمز عبور اشتباه است")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="حساب کاربری غیرفعال است")

    logger.info(f"User {user.id} signed in with a password")
    return {"success": True, **create_session(db, user)}


@router.post("/password/set")
async def set_password(
    payload: PasswordSetRequest,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Set a first password, or change it by giving the current one"""
    if ctx.is_impersonating:
        raise HTTPException(status_code=403, detail="تغییر رمز عبور در حالت ورود به جای کاربر مجاز نیست")
    try:
        password_service.change_password(db, ctx.user, payload.new_password, payload.current_password)
    except password_service.PasswordError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"success": True, "message": "رمز عبور با موفقیت ذخیره شد"}


@router.post("/password/reset")
async def reset_password(payload: PasswordResetRequest, db: Session = Depends(get_db)):
    """Replace a forgotten password using a login code sent by /auth/send-otp"""
    phone = _phone_or_400(payload.phone_number)
    try:
        password_service.validate_new_password(payload.new_password)
    except password_service.PasswordError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    code = normalize_otp_code(payload.code, OTP_LENGTH)
    if not code:
        raise HTTPException(status_code=400, detail=f"کد تایید باید دقیقاً {OTP_LENGTH} رقم باشد")

    user = _find_user(db, phone)
    if user is None:
        raise HTTPException(status_code=404, detail="این شماره در سامانه ثبت نشده است")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="حساب کاربری غیرفعال است")
    if not otp_service.verify_code(db, phone, code, otp_service.PURPOSE_LOGIN):
        raise HTTPException(status_code=400, detail="کد تایید نامعتبر یا منقضی شده است")

    password_service.set_password(db, user, payload.new_password, action="password_reset")
    return {"success": True, "message": "رمز عبور با موفقیت تغییر کرد"}
