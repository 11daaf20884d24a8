"""Approval service - Business logic for the multi-role approval ledger"""

import logging
from typing import Iterable

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Order, OrderApproval
from ...roles import ROLE_LABELS
from ...services.audit_service import record_audit
from .repository import ApprovalRepository

logger = logging.getLogger(__name__)


def approval_progress(rows: Iterable[OrderApproval]) -> dict:
    """
    Completion of a ledger.

    An empty ledger has ratio 0.0 and is never complete.
    """
    rows = list(rows)
    total = len(rows)
    completed = sum(1 for row in rows if row.approved_at is not None)
    ratio = completed / total if total else 0.0
    return {
        "completed": completed,
        "total": total,
        "ratio": ratio,
        "percent": round(ratio * 100),
        "is_complete": total > 0 and completed == total,
    }


def approval_to_dict(row: OrderApproval) -> dict:
    return {
        "id": row.id,
        "approver_role": row.approver_role,
        "role_label": ROLE_LABELS.get(row.approver_role, row.approver_role),
        "approver_user_id": row.approver_user_id,
        "approver_name": row.approver.full_name if row.approver else None,
        "approved_at": row.approved_at,
        "created_at": row.created_at,
    }


class ApprovalService:
    """Service layer for approval ledger rules"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ApprovalRepository()

    def ensure_approval_rows(self, order: Order, roles: Iterable[str]) -> list[OrderApproval]:
        """
        Create the missing ledger rows for an order. Idempotent.

        Rows are flushed, not committed; the caller owns the transaction.
        """
        existing = self.repo.existing_roles(self.db, order.id)
        created = []
        for role in dict.fromkeys(roles):
            if role in existing:
                continue
            created.append(self.repo.add_row(self.db, order.id, role))
        if created:
            # A concurrent submit trips the (order_id, approver_role) unique constraint here
            self.db.flush()
            logger.info(
                f"Created approval rows for order {order.id}: {[r.approver_role for r in created]}"
            )
        return created

    def list_approvals(self, order_id: int) -> list[OrderApproval]:
        return self.repo.get_rows(self.db, order_id)

    def record_approval(self, order_id: int, role: str, user_id: int) -> dict:
        """
        Record one role's sign-off on an order.

        Returns:
            Dict with recorded and already_approved. recorded is False when the
            order has no row for the role; nothing is created in that case.
            A row that is already approved keeps its first approver.
        """
        changed = self.repo.mark_approved(self.db, order_id, role, user_id)
        if changed:
            record_audit(
                self.db,
                action="order_approval_recorded",
                entity="orders",
                entity_id=order_id,
                actor_user_id=user_id,
                meta={"approver_role": role},
            )
            self.db.commit()
            logger.info(f"Approval recorded: order {order_id}, role {role}, user {user_id}")
            return {"recorded": True, "already_approved": False}

        row = self.repo.get_row(self.db, order_id, role)
        if row is None:
            logger.info(f"No approval row for order {order_id}, role {role}; nothing recorded")
            return {"recorded": False, "already_approved": False}

        logger.info(f"Approval for order {order_id}, role {role} was already recorded")
        return {"recorded": False, "already_approved": True}

    def progress(self, order_id: int) -> dict:
        return approval_progress(self.repo.get_rows(self.db, order_id))

    def require_complete(self, order: Order) -> None:
        """Raise 409 unless every required role signed off"""
        progress = self.progress(order.id)
        if not progress["is_complete"]:
            raise HTTPException(
                status_code=409,
                detail=(
                    f"Order {order.code} still needs approvals "
                    f"({progress['completed']}/{progress['total']})"
                ),
            )
