"""Order repository - Database operations for orders"""

import re
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Order

CODE_PREFIX = "ORD-"
FIRST_CODE_NUMBER = 1001

_CODE_PATTERN = re.compile(r"^ORD-(\d+)$")


class OrderRepository:
    """Repository for order database operations"""

    @staticmethod
    def next_order_code(db: Session) -> str:
        """Next sequential code: ORD-1001, ORD-1002, ..."""
        highest = FIRST_CODE_NUMBER - 1
        for (code,) in db.query(Order.code).filter(Order.code.like(f"{CODE_PREFIX}%")).all():
            match = _CODE_PATTERN.match(code or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return f"{CODE_PREFIX}{highest + 1}"

    @staticmethod
    def get_orders(
        db: Session,
        customer_id: Optional[int] = None,
        status: Optional[str] = None,
        include_archived: bool = False,
    ) -> list[Order]:
        """Orders newest first; customer_id=None means every customer"""
        query = db.query(Order)
        if customer_id is not None:
            query = query.filter(Order.customer_id == customer_id)
        if status:
            query = query.filter(Order.status == status)
        if not include_archived:
            query = query.filter(Order.is_archived.is_(False))
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    @staticmethod
    def get_order_by_id(db: Session, order_id: int) -> Optional[Order]:
        return db.query(Order).filter(Order.id == order_id).first()

    @staticmethod
    def create_order(db: Session, **order_data) -> Order:
        """Add an order and flush it so it has an id; the caller commits"""
        order = Order(**order_data)
        db.add(order)
        db.flush()
        return order

    @staticmethod
    def archive(db: Session, order: Order, user_id: int) -> None:
        order.is_archived = True
        order.archived_at = datetime.utcnow()
        order.archived_by = user_id
