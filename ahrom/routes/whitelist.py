"""
Phone whitelist administration.

Only admin-level roles can read or change the list. Anyone else may ask
about a single phone through /auth/check-whitelist, which answers a boolean.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import AuthContext, get_auth_context, require_roles
from ..database import get_db
from ..roles import ADMIN_ROLES
from ..services import whitelist_service
from ..services.audit_service import record_audit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Whitelist"])

require_admin = require_roles(*ADMIN_ROLES)


class WhitelistEntryCreate(BaseModel):
    phone_number: str
    kind: str = whitelist_service.KIND_PHONE
    allowed_roles: List[str] = []
    notes: Optional[str] = None


class WhitelistEntryResponse(BaseModel):
    id: int
    phone_number: str
    kind: str
    allowed_roles: List[str]
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/admin/whitelist", response_model=List[WhitelistEntryResponse])
async def list_whitelist(
    kind: Optional[str] = None,
    ctx: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return whitelist_service.list_entries(db, kind)


@router.post("/admin/whitelist", response_model=WhitelistEntryResponse, status_code=201)
async def add_whitelist_entry(
    payload: WhitelistEntryCreate,
    ctx: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    entry = whitelist_service.add_entry(
        db,
        payload.phone_number,
        kind=payload.kind,
        allowed_roles=payload.allowed_roles,
        notes=payload.notes,
        created_by=ctx.user.id,
    )
    record_audit(
        db,
        action="whitelist_entry_added",
        entity="whitelist_entries",
        entity_id=entry.id,
        actor_user_id=ctx.user.id,
        meta={"kind": entry.kind, "allowed_roles": entry.allowed_roles},
        commit=True,
    )
    return entry


@router.delete("/admin/whitelist/{entry_id}")
async def delete_whitelist_entry(
    entry_id: int,
    ctx: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    whitelist_service.delete_entry(db, entry_id)
    record_audit(
        db,
        action="whitelist_entry_removed",
        entity="whitelist_entries",
        entity_id=entry_id,
        actor_user_id=ctx.user.id,
        commit=True,
    )
    return {"success": True}


@router.get("/whitelist/staff/check")
async def check_staff_whitelist(
    ctx: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Whether the caller's own phone is on the staff list"""
    return {
        "success": True,
        "is_whitelisted": whitelist_service.check_whitelist(
            db, ctx.user.phone_number, whitelist_service.KIND_STAFF
        ),
    }
