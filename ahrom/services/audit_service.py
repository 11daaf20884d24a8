import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import AuditLog

logger = logging.getLogger(__name__)


def record_audit(
    db: Session,
    action: str,
    entity: str,
    entity_id: Any = None,
    actor_user_id: Optional[int] = None,
    meta: Optional[dict] = None,
    commit: bool = False,
) -> AuditLog:
    """Append an audit row. The caller's transaction commits it unless commit=True."""
    entry = AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=meta or {},
    )
    db.add(entry)
    if commit:
        db.commit()
    logger.info(f"Audit: {action} on {entity}:{entity_id} by {actor_user_id}")
    return entry
