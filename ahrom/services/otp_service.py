"""
One-time code issuance and verification.

Codes are stored in the otp_codes table and consumed exactly once. The same
table backs the per-phone issuance rate limit.
"""

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from ..config import OTP_LENGTH, OTP_RATE_LIMIT_COUNT, OTP_RATE_LIMIT_WINDOW_SECONDS, OTP_TTL_SECONDS
from ..models import OtpCode

logger = logging.getLogger(__name__)

PURPOSE_LOGIN = "login"
PURPOSE_MODULE_DELETE = "module_delete"


def generate_otp(length: int = OTP_LENGTH) -> str:
    """Generate a cryptographically secure numeric code without a leading zero"""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def is_rate_limited(db: Session, phone_number: str) -> bool:
    """True when the phone already received the maximum codes inside the window"""
    window_start = datetime.utcnow() - timedelta(seconds=OTP_RATE_LIMIT_WINDOW_SECONDS)
    recent = (
        db.query(OtpCode)
        .filter(OtpCode.phone_number == phone_number, OtpCode.created_at >= window_start)
        .count()
    )
    if recent >= OTP_RATE_LIMIT_COUNT:
        logger.warning(f"OTP rate limit hit for {phone_number} ({recent} codes)")
        return True
    return False


def store_code(db: Session, phone_number: str, code: str, purpose: str = PURPOSE_LOGIN) -> OtpCode:
    now = datetime.utcnow()
    otp = OtpCode(
        phone_number=phone_number,
        code=code,
        purpose=purpose,
        expires_at=now + timedelta(seconds=OTP_TTL_SECONDS),
        verified=False,
        created_at=now,
    )
    db.add(otp)
    db.commit()
    db.refresh(otp)
    logger.info(f"OTP stored for {phone_number} (purpose={purpose}, expires {otp.expires_at})")
    return otp


def verify_code(db: Session, phone_number: str, code: str, purpose: str = PURPOSE_LOGIN) -> bool:
    """
    Consume the most recent live code for a phone.

    Only the newest unverified, unexpired code counts; older codes are ignored
    even when they match. A successful check marks the code verified so it can
    never be used twice.
    """
    if not code:
        return False

    latest = (
        db.query(OtpCode)
        .filter(
            OtpCode.phone_number == phone_number,
            OtpCode.purpose == purpose,
            OtpCode.verified.is_(False),
            OtpCode.expires_at > datetime.utcnow(),
        )
        .order_by(OtpCode.created_at.desc(), OtpCode.id.desc())
        .first()
    )

    if not latest:
        logger.info(f"No live OTP for {phone_number} (purpose={purpose})")
        return False

    if not secrets.compare_digest(latest.code, code):
        logger.info(f"OTP mismatch for {phone_number}")
        return False

    latest.verified = True
    db.commit()
    logger.info(f"OTP verified for {phone_number} (purpose={purpose})")
    return True
