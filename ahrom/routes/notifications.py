import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import AuthContext, get_auth_context, require_roles
from ..database import get_db
from ..models import Notification
from ..roles import STAFF_ROLES
from ..services import notification_service, push_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])

require_staff = require_roles(*STAFF_ROLES)


class NotificationResponse(BaseModel):
    id: int
    title: str
    body: str
    link: Optional[str] = None
    type: str
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PushRequest(BaseModel):
    user_id: Optional[int] = None
    title: Optional[str] = None
    body: Optional[str] = None
    link: Optional[str] = None
    type: str = "info"


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return notification_service.list_notifications(db, ctx.user.id, unread_only, min(max(limit, 1), 200))


@router.get("/unread-count")
async def get_unread_count(
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return {"unread_count": notification_service.unread_count(db, ctx.user.id)}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == ctx.user.id)
        .first()
    )
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")

    if notification.read_at is None:
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)
    return notification


@router.post("/read-all")
async def mark_all_read(
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == ctx.user.id, Notification.read_at.is_(None))
        .update({Notification.read_at: datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    return {"success": True, "updated": updated}


@router.post("/push")
async def relay_push(
    payload: PushRequest,
    ctx: AuthContext = Depends(require_staff),
):
    """Relay a push notification to one user's devices"""
    if not payload.user_id or not payload.title or not payload.body:
        raise HTTPException(status_code=400, detail="Missing required fields: user_id, title, body")

    if ctx.is_impersonating:
        logger.info(f"Push to user {payload.user_id} suppressed (impersonation by {ctx.impersonator_id})")
        return {"success": True, "pushed": False, "provider_id": None, "suppressed": True}

    result = await push_service.send_push(
        [payload.user_id], payload.title, payload.body, payload.link, payload.type
    )
    if result["error"]:
        raise HTTPException(status_code=502, detail=f"Push delivery failed: {result['error']}")

    return {"success": True, "pushed": result["pushed"], "provider_id": result["provider_id"]}
