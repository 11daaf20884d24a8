"""Approval repository - Database operations for the approval ledger"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import OrderApproval


class ApprovalRepository:
    """Repository for approval ledger rows"""

    @staticmethod
    def get_rows(db: Session, order_id: int) -> list[OrderApproval]:
        """All ledger rows of an order in creation order"""
        return (
            db.query(OrderApproval)
            .options(joinedload(OrderApproval.approver))
            .filter(OrderApproval.order_id == order_id)
            .order_by(OrderApproval.created_at.asc(), OrderApproval.id.asc())
            .all()
        )

    @staticmethod
    def get_row(db: Session, order_id: int, role: str) -> Optional[OrderApproval]:
        return (
            db.query(OrderApproval)
            .filter(OrderApproval.order_id == order_id, OrderApproval.approver_role == role)
            .first()
        )

    @staticmethod
    def existing_roles(db: Session, order_id: int) -> set[str]:
        rows = (
            db.query(OrderApproval.approver_role).filter(OrderApproval.order_id == order_id).all()
        )
        return {row[0] for row in rows}

    @staticmethod
    def add_row(db: Session, order_id: int, role: str) -> OrderApproval:
        row = OrderApproval(order_id=order_id, approver_role=role, created_at=datetime.utcnow())
        db.add(row)
        return row

    @staticmethod
    def mark_approved(db: Session, order_id: int, role: str, user_id: int) -> int:
        """
        Stamp the (order, role) row if it is still open.

        A single conditional UPDATE, so two concurrent approvals of the same
        role stamp the row once. Returns the number of rows changed (0 or 1).
        """
        return (
            db.query(OrderApproval)
            .filter(
                OrderApproval.order_id == order_id,
                OrderApproval.approver_role == role,
                OrderApproval.approved_at.is_(None),
            )
            .update(
                {
                    OrderApproval.approver_user_id: user_id,
                    OrderApproval.approved_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
        )
