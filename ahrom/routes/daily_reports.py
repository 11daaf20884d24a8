"""
Daily report finalization locks and module version history.
Staff only.
"""

import logging
from datetime import date, datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import AuthContext, require_roles
from ..database import get_db
from ..roles import STAFF_ROLES
from ..services import daily_report_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Daily Reports"])

require_staff = require_roles(*STAFF_ROLES)


class LockStatusResponse(BaseModel):
    report_date: date
    is_locked: bool
    locked_by: Optional[int] = None
    locked_by_name: Optional[str] = None
    locked_at: Optional[datetime] = None
    locked_by_module_key: Optional[str] = None


class LockRequest(BaseModel):
    module_key: str = daily_report_service.DEFAULT_LOCK_MODULE_KEY


class ModuleVersionCreate(BaseModel):
    module_date: date
    data: Any


class ModuleVersionResponse(BaseModel):
    id: int
    module_key: str
    module_date: date
    version_number: int
    saved_by: int
    data_snapshot: Any
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============================================
# Date locks
# ============================================


@router.get("/daily-reports/locks/{report_date}", response_model=LockStatusResponse)
async def get_lock(
    report_date: date,
    ctx: AuthContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return daily_report_service.lock_status(db, report_date)


@router.post("/daily-reports/locks/{report_date}", response_model=LockStatusResponse)
async def lock_date(
    report_date: date,
    payload: Optional[LockRequest] = None,
    ctx: AuthContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    module_key = payload.module_key if payload else daily_report_service.DEFAULT_LOCK_MODULE_KEY
    return daily_report_service.lock_date(db, report_date, ctx.user.id, module_key)


@router.delete("/daily-reports/locks/{report_date}", response_model=LockStatusResponse)
async def unlock_date(
    report_date: date,
    ctx: AuthContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return daily_report_service.unlock_date(db, report_date, ctx.user.id)


# ============================================
# Module versions
# ============================================


@router.post("/modules/{module_key}/versions", status_code=201)
async def save_version(
    module_key: str,
    payload: ModuleVersionCreate,
    ctx: AuthContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    version_number = daily_report_service.save_module_version(
        db, module_key, payload.module_date, payload.data, ctx.user.id
    )
    return {"success": True, "version_number": version_number}


@router.get("/modules/{module_key}/versions", response_model=List[ModuleVersionResponse])
async def list_versions(
    module_key: str,
    module_date: date,
    ctx: AuthContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return daily_report_service.list_module_versions(db, module_key, module_date)


@router.get("/modules/{module_key}/versions/{version_number}", response_model=ModuleVersionResponse)
async def get_version(
    module_key: str,
    version_number: int,
    module_date: date,
    ctx: AuthContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    version = daily_report_service.get_module_version(db, module_key, module_date, version_number)
    if not version:
        raise HTTPException(status_code=404, detail="Version not found")
    return version
