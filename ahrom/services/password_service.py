"""
Optional account passwords

Phone + OTP stays the primary login; a user may add a password and use it
instead of waiting for a code.
"""

import logging
from datetime import datetime
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import PASSWORD_MIN_LENGTH
from ..models import User
from .audit_service import record_audit

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class PasswordError(Exception):
    """Raised when a password cannot be set or does not match"""


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against a stored bcrypt hash"""
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.error(f"Password verification error: {e}")
        return False


def has_password(user: User) -> bool:
    return bool(user.password_hash)


def validate_new_password(password: Optional[str]) -> str:
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        raise PasswordError("رمز عبور باید حداقل ۶ کاراکتر باشد")
    # bcrypt only reads the first 72 bytes
    if len(password.encode("utf-8")) > 72:
        raise PasswordError("رمز عبور بیش از حد طولانی است")
    return password


def set_password(db: Session, user: User, new_password: str, action: str = "password_set") -> User:
    """Hash and store a new password, auditing the change"""
    validate_new_password(new_password)
    had_password = has_password(user)

    user.password_hash = hash_password(new_password)
    user.password_set_at = datetime.utcnow()
    record_audit(
        db,
        action=action,
        entity="users",
        entity_id=user.id,
        actor_user_id=user.id,
        meta={"replaced": had_password},
    )
    db.commit()
    db.refresh(user)
    logger.info(f"Password {'changed' if had_password else 'set'} for user {user.id}")
    return user


def change_password(db: Session, user: User, new_password: str, current_password: Optional[str] = None) -> User:
    """Set or change the caller's password. Changing requires the current one."""
    if has_password(user) and not verify_password(current_password or "", user.password_hash):
        raise PasswordError("رمز عبور فعلی اشتباه است")
    return set_password(db, user, new_password)
