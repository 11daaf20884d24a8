"""
Daily report finalization locks and module version history
"""

import logging
from datetime import date
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import DailyReportDateLock, ModuleVersion
from .audit_service import record_audit

logger = logging.getLogger(__name__)

DEFAULT_LOCK_MODULE_KEY = "aggregated"
VERSION_HISTORY_LIMIT = 10
VERSION_SAVE_RETRIES = 3


def lock_status(db: Session, report_date: date) -> dict:
    lock = db.query(DailyReportDateLock).filter(DailyReportDateLock.report_date == report_date).first()
    if not lock:
        return {
            "report_date": report_date,
            "is_locked": False,
            "locked_by": None,
            "locked_by_name": None,
            "locked_at": None,
            "locked_by_module_key": None,
        }
    return {
        "report_date": report_date,
        "is_locked": True,
        "locked_by": lock.locked_by,
        "locked_by_name": lock.locker.full_name if lock.locker else None,
        "locked_at": lock.locked_at,
        "locked_by_module_key": lock.locked_by_module_key,
    }


def lock_date(
    db: Session, report_date: date, user_id: int, module_key: str = DEFAULT_LOCK_MODULE_KEY
) -> dict:
    """
    Finalize a report date.

    The insert itself is the check: the unique constraint on report_date
    rejects a second lock, whoever wins the race.
    """
    db.add(
        DailyReportDateLock(
            report_date=report_date,
            locked_by=user_id,
            locked_by_module_key=module_key or DEFAULT_LOCK_MODULE_KEY,
        )
    )
    try:
        record_audit(
            db,
            action="daily_report_date_locked",
            entity="daily_report_date_locks",
            entity_id=report_date.isoformat(),
            actor_user_id=user_id,
            meta={"module_key": module_key},
        )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.info(f"Report date {report_date} is already locked")
        raise HTTPException(
            status_code=409, detail="این تاریخ قبلاً توسط کاربر دیگری قفل شده است"
        ) from e

    logger.info(f"Report date {report_date} locked by user {user_id}")
    return lock_status(db, report_date)


def unlock_date(db: Session, report_date: date, user_id: int) -> dict:
    """Remove the lock of a date. Unlocking an unlocked date is a no-op."""
    deleted = (
        db.query(DailyReportDateLock)
        .filter(DailyReportDateLock.report_date == report_date)
        .delete(synchronize_session="fetch")
    )
    if deleted:
        record_audit(
            db,
            action="daily_report_date_unlocked",
            entity="daily_report_date_locks",
            entity_id=report_date.isoformat(),
            actor_user_id=user_id,
        )
        logger.info(f"Report date {report_date} unlocked by user {user_id}")
    db.commit()
    return lock_status(db, report_date)


def save_module_version(
    db: Session, module_key: str, module_date: date, data_snapshot: Any, user_id: int
) -> int:
    """Store a snapshot as the next version of a module/date. Returns the version number."""
    for attempt in range(1, VERSION_SAVE_RETRIES + 1):
        current = (
            db.query(func.max(ModuleVersion.version_number))
            .filter(ModuleVersion.module_key == module_key, ModuleVersion.module_date == module_date)
            .scalar()
        )
        next_version = (current or 0) + 1
        db.add(
            ModuleVersion(
                module_key=module_key,
                module_date=module_date,
                version_number=next_version,
                saved_by=user_id,
                data_snapshot=data_snapshot,
            )
        )
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Version {next_version} of {module_key} taken (attempt {attempt})")
            if attempt == VERSION_SAVE_RETRIES:
                raise HTTPException(status_code=409, detail="Could not save version, try again") from e
            continue

        logger.info(f"Saved {module_key} {module_date} version {next_version} by user {user_id}")
        return next_version


def list_module_versions(db: Session, module_key: str, module_date: date) -> list[ModuleVersion]:
    """The latest versions, newest first"""
    return (
        db.query(ModuleVersion)
        .filter(ModuleVersion.module_key == module_key, ModuleVersion.module_date == module_date)
        .order_by(ModuleVersion.version_number.desc())
        .limit(VERSION_HISTORY_LIMIT)
        .all()
    )


def get_module_version(
    db: Session, module_key: str, module_date: date, version_number: int
) -> Optional[ModuleVersion]:
    return (
        db.query(ModuleVersion)
        .filter(
            ModuleVersion.module_key == module_key,
            ModuleVersion.module_date == module_date,
            ModuleVersion.version_number == version_number,
        )
        .first()
    )
