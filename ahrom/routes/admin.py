"""
Admin tools: impersonation ("login as user") and role management
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import AuthContext, get_auth_context, require_roles
from ..database import get_db
from ..models import User
from ..roles import ADMIN_ROLES, ROLE_LABELS, VIEW_PRECEDENCE, get_user_roles, grant_role, revoke_role
from ..services import impersonation_service
from ..services.audit_service import record_audit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

require_admin = require_roles(*ADMIN_ROLES)


class LoginAsUserRequest(BaseModel):
    target_user_id: Optional[int] = None


class RoleChangeRequest(BaseModel):
    role: str


# ============================================
# Impersonation
# ============================================


@router.post("/login-as-user")
async def login_as_user(
    payload: LoginAsUserRequest,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Open a session as another user. The role check happens in the service."""
    session = impersonation_service.start_impersonation(db, ctx, payload.target_user_id)
    return {"success": True, **session}


@router.post("/impersonation/end")
async def end_impersonation(
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Return to the admin's own session"""
    session = impersonation_service.end_impersonation(db, ctx)
    return {"success": True, **session}


# ============================================
# Roles
# ============================================


def _target_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="کاربر یافت نشد")
    return user


def _known_role_or_400(role: str) -> str:
    if role not in VIEW_PRECEDENCE:
        raise HTTPException(status_code=400, detail=f"Unknown role: {role}")
    return role


@router.get("/roles")
async def list_roles(ctx: AuthContext = Depends(require_admin)):
    return [{"role": role, "label": ROLE_LABELS[role]} for role in VIEW_PRECEDENCE]


@router.post("/users/{user_id}/roles")
async def add_user_role(
    user_id: int,
    payload: RoleChangeRequest,
    ctx: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    role = _known_role_or_400(payload.role)
    _target_or_404(db, user_id)

    try:
        granted = grant_role(db, user_id, role)
        if granted:
            record_audit(
                db,
                action="role_granted",
                entity="user_roles",
                entity_id=user_id,
                actor_user_id=ctx.user.id,
                meta={"role": role},
            )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to grant role {role} to user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update roles") from e

    return {"success": True, "changed": granted, "roles": sorted(get_user_roles(db, user_id))}


@router.delete("/users/{user_id}/roles/{role}")
async def remove_user_role(
    user_id: int,
    role: str,
    ctx: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    _known_role_or_400(role)
    _target_or_404(db, user_id)

    try:
        revoked = revoke_role(db, user_id, role)
        if revoked:
            record_audit(
                db,
                action="role_revoked",
                entity="user_roles",
                entity_id=user_id,
                actor_user_id=ctx.user.id,
                meta={"role": role},
            )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to revoke role {role} from user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update roles") from e

    return {"success": True, "changed": revoked, "roles": sorted(get_user_roles(db, user_id))}
