"""
Admin impersonation ("login as user")
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..auth import AuthContext, create_session, load_active_user
from ..models import ImpersonationSession, User
from ..roles import IMPERSONATION_ROLES, get_user_roles, has_any_role
from .audit_service import record_audit

logger = logging.getLogger(__name__)


def start_impersonation(db: Session, ctx: AuthContext, target_user_id: Optional[int]) -> dict:
    """
    Open a session as another user on behalf of an admin.

    The role check comes first so a caller without an admin-level role gets
    403 whatever target they name.
    """
    if not has_any_role(ctx.roles, IMPERSONATION_ROLES):
        logger.warning(f"User {ctx.user.id} attempted impersonation without an admin role")
        raise HTTPException(
            status_code=403,
            detail="فقط مدیران می‌توانند به حساب کاربران دیگر دسترسی داشته باشند",
        )

    if ctx.is_impersonating:
        raise HTTPException(status_code=400, detail="Already impersonating a user")

    if not target_user_id:
        raise HTTPException(status_code=400, detail="target_user_id is required")

    target = db.query(User).filter(User.id == target_user_id).first()
    if not target or not target.is_active:
        raise HTTPException(status_code=404, detail="کاربر یافت نشد")

    admin_id = ctx.user.id
    try:
        record_audit(
            db,
            action="admin_login_as_user",
            entity="users",
            entity_id=target.id,
            actor_user_id=admin_id,
            meta={
                "admin_user_id": admin_id,
                "target_user_id": target.id,
                "timestamp": datetime.utcnow().isoformat(),
            },
        )
        db.add(ImpersonationSession(admin_user_id=admin_id, target_user_id=target.id))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to open impersonation session: {e}")
        raise HTTPException(status_code=500, detail="Failed to start impersonation") from e

    logger.info(f"Admin {admin_id} is now impersonating user {target.id}")
    session = create_session(db, target, impersonator_id=admin_id)
    session["original_admin_id"] = admin_id
    return session


def end_impersonation(db: Session, ctx: AuthContext) -> dict:
    """
    Close the impersonation session and hand back a session for the admin.

    The admin session is minted from the `imp` claim, so returning works even
    if the admin's own refresh token expired in the meantime. The admin must
    still hold an admin-level role.
    """
    if not ctx.is_impersonating:
        raise HTTPException(status_code=400, detail="Not an impersonation session")

    admin = load_active_user(db, ctx.impersonator_id)
    if not has_any_role(get_user_roles(db, admin.id), IMPERSONATION_ROLES):
        logger.warning(f"User {admin.id} lost admin roles during impersonation")
        raise HTTPException(status_code=403, detail="دسترسی به این بخش مجاز نیست")

    open_sessions = (
        db.query(ImpersonationSession)
        .filter(
            ImpersonationSession.admin_user_id == admin.id,
            ImpersonationSession.target_user_id == ctx.user.id,
            ImpersonationSession.ended_at.is_(None),
        )
        .all()
    )
    now = datetime.utcnow()
    for row in open_sessions:
        row.ended_at = now

    record_audit(
        db,
        action="admin_impersonation_ended",
        entity="users",
        entity_id=ctx.user.id,
        actor_user_id=admin.id,
        meta={"admin_user_id": admin.id, "target_user_id": ctx.user.id},
    )
    db.commit()

    logger.info(f"Admin {admin.id} stopped impersonating user {ctx.user.id}")
    return create_session(db, admin)
