import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import WhitelistEntry
from ..roles import VIEW_PRECEDENCE
from ..shared.validators import normalize_iran_phone, validate_iran_phone

logger = logging.getLogger(__name__)

KIND_PHONE = "phone"
KIND_STAFF = "staff"
KIND_CEO_ACCESS = "ceo_access"
WHITELIST_KINDS = (KIND_PHONE, KIND_STAFF, KIND_CEO_ACCESS)


def find_entry(db: Session, phone_number: str, kind: str = KIND_PHONE) -> Optional[WhitelistEntry]:
    """Look up a phone, tolerating entries stored in any accepted phone format"""
    normalized = normalize_iran_phone(phone_number)
    if not normalized:
        return None

    exact = (
        db.query(WhitelistEntry)
        .filter(WhitelistEntry.phone_number == normalized, WhitelistEntry.kind == kind)
        .first()
    )
    if exact:
        return exact

    for entry in db.query(WhitelistEntry).filter(WhitelistEntry.kind == kind).limit(1000):
        if normalize_iran_phone(entry.phone_number) == normalized:
            return entry
    return None


def check_whitelist(db: Session, phone_number: str, kind: str = KIND_PHONE) -> bool:
    return find_entry(db, phone_number, kind) is not None


def whitelisted_roles(db: Session, phone_number: str) -> list[str]:
    """Roles granted at registration to a whitelisted phone"""
    entry = find_entry(db, phone_number, KIND_PHONE)
    if not entry:
        return []
    return [role for role in (entry.allowed_roles or []) if role in VIEW_PRECEDENCE]


def list_entries(db: Session, kind: Optional[str] = None) -> list[WhitelistEntry]:
    query = db.query(WhitelistEntry)
    if kind:
        query = query.filter(WhitelistEntry.kind == kind)
    return query.order_by(WhitelistEntry.created_at.desc(), WhitelistEntry.id.desc()).all()


def add_entry(
    db: Session,
    phone_number: str,
    kind: str = KIND_PHONE,
    allowed_roles: Optional[list[str]] = None,
    notes: Optional[str] = None,
    created_by: Optional[int] = None,
) -> WhitelistEntry:
    if kind not in WHITELIST_KINDS:
        raise HTTPException(status_code=400, detail=f"Unknown whitelist kind: {kind}")
    try:
        normalized = validate_iran_phone(phone_number)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    unknown = [role for role in (allowed_roles or []) if role not in VIEW_PRECEDENCE]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown roles: {', '.join(unknown)}")

    if find_entry(db, normalized, kind):
        raise HTTPException(status_code=409, detail="این شماره قبلاً در لیست سفید ثبت شده است")

    entry = WhitelistEntry(
        phone_number=normalized,
        kind=kind,
        allowed_roles=list(dict.fromkeys(allowed_roles or [])),
        notes=notes,
        created_by=created_by,
    )
    db.add(entry)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail="این شماره قبلاً در لیست سفید ثبت شده است") from e
    db.refresh(entry)
    logger.info(f"Whitelist entry added: {normalized} ({kind}) by {created_by}")
    return entry


def delete_entry(db: Session, entry_id: int) -> None:
    entry = db.query(WhitelistEntry).filter(WhitelistEntry.id == entry_id).first()
    if not entry:
        raise HTTPException(status_code=404, detail="Whitelist entry not found")
    db.delete(entry)
    db.commit()
    logger.info(f"Whitelist entry {entry_id} removed")
