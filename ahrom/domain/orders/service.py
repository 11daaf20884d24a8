"""Order service - Business logic for the order lifecycle"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import AuthContext
from ...config import REQUIRED_APPROVAL_ROLES
from ...models import Order
from ...roles import STAFF_ROLES, has_any_role
from ...services import notification_service, order_sms_service, order_status, zarinpal_service
from ...services.audit_service import record_audit
from ...shared.validators import sanitize_string
from ..approvals.service import ApprovalService
from .repository import OrderRepository
from .schemas import OrderCreate

logger = logging.getLogger(__name__)

CODE_RETRIES = 3


class OrderService:
    """Service layer for order business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepository()
        self.approvals = ApprovalService(db)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_orders(
        self, ctx: AuthContext, status: Optional[str] = None, include_archived: bool = False
    ) -> list[Order]:
        """Staff see every order, customers only their own"""
        customer_id = None if has_any_role(ctx.roles, STAFF_ROLES) else ctx.user.id
        return self.repo.get_orders(self.db, customer_id, status, include_archived)

    def get_order(self, order_id: int, ctx: AuthContext) -> Order:
        order = self.repo.get_order_by_id(self.db, order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        if order.customer_id != ctx.user.id and not has_any_role(ctx.roles, STAFF_ROLES):
            raise HTTPException(status_code=403, detail="دسترسی به این سفارش مجاز نیست")
        return order

    # ------------------------------------------------------------------
    # Creation and submission
    # ------------------------------------------------------------------

    async def create_order(self, data: OrderCreate, ctx: AuthContext) -> Order:
        """Create an order; submitted orders open their approval ledger"""
        status = order_status.PENDING if data.submit else order_status.DRAFT
        logger.info(f"Creating {status} order for user {ctx.user.id}")

        order = None
        for attempt in range(1, CODE_RETRIES + 1):
            try:
                order = self.repo.create_order(
                    self.db,
                    code=self.repo.next_order_code(self.db),
                    customer_id=ctx.user.id,
                    service_type=sanitize_string(data.service_type, 100),
                    address=sanitize_string(data.address) if data.address else None,
                    latitude=data.latitude,
                    longitude=data.longitude,
                    notes=sanitize_string(data.notes) if data.notes else None,
                    status=status,
                )
                if status == order_status.PENDING:
                    self.approvals.ensure_approval_rows(order, REQUIRED_APPROVAL_ROLES)
                record_audit(
                    self.db,
                    action="order_created",
                    entity="orders",
                    entity_id=order.id,
                    actor_user_id=ctx.user.id,
                    meta={"code": order.code, "status": status},
                )
                self.db.commit()
                break
            except IntegrityError as e:
                # Two requests picked the same code
                self.db.rollback()
                logger.warning(f"Order code collision (attempt {attempt}): {e}")
                if attempt == CODE_RETRIES:
                    raise HTTPException(status_code=409, detail="Could not allocate an order code") from e

        self.db.refresh(order)
        logger.info(f"Order {order.code} created with status {order.status}")

        if status == order_status.PENDING:
            await self._announce_submission(order, ctx)
        return order

    async def _announce_submission(self, order: Order, ctx: AuthContext) -> None:
        notification_service.create_notification(
            self.db,
            order.customer_id,
            f"سفارش {order.code} ثبت شد",
            "سفارش شما ثبت شد و در انتظار بررسی مدیران است.",
            link=f"/orders/{order.id}",
            notification_type="success",
            suppressed=ctx.is_impersonating,
        )
        await notification_service.notify_managers_new_order(
            self.db, order, notification_service.MESSAGE_NEW_ORDER, suppressed=ctx.is_impersonating
        )
        await order_sms_service.send_status_sms(self.db, order, suppressed=ctx.is_impersonating)
        await order_sms_service.send_ceo_sms(order, order_sms_service.CEO_NEW_ORDER, suppressed=ctx.is_impersonating)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def change_status(self, order_id: int, new_status: str, ctx: AuthContext) -> Order:
        """
        Move an order to a new status.

        Checks run in order: the transition table, the caller's roles, then
        the approval ledger for pending -> approved. The returned order is
        re-read after commit.
        """
        order = self.get_order(order_id, ctx)
        current = order.status

        if new_status not in order_status.ORDER_STATUSES:
            raise HTTPException(status_code=400, detail=f"Unknown status: {new_status}")
        if order.is_archived:
            raise HTTPException(status_code=409, detail="Archived orders cannot change status")
        if current == new_status:
            return order
        if not order_status.validate_status_transition(current, new_status):
            raise HTTPException(
                status_code=400, detail=f"Invalid status transition: {current} → {new_status}"
            )
        if not order_status.can_actor_transition(order, new_status, ctx.user.id, ctx.roles):
            logger.warning(f"User {ctx.user.id} may not move order {order.code} to {new_status}")
            raise HTTPException(status_code=403, detail="شما مجاز به تغییر وضعیت این سفارش نیستید")

        if current == order_status.PENDING and new_status == order_status.APPROVED:
            self.approvals.require_complete(order)

        try:
            order.status = new_status
            if new_status == order_status.PENDING:
                self.approvals.ensure_approval_rows(order, REQUIRED_APPROVAL_ROLES)
            record_audit(
                self.db,
                action="order_status_changed",
                entity="orders",
                entity_id=order.id,
                actor_user_id=ctx.user.id,
                meta={"from": current, "to": new_status, "impersonated_by": ctx.impersonator_id},
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to change status of order {order.code}: {e}")
            raise HTTPException(status_code=500, detail="Failed to update order status") from e

        self.db.refresh(order)
        logger.info(f"Order {order.code} transitioned: {current} → {order.status}")

        label = order_status.status_display(order.status)["label"]
        notification_service.create_notification(
            self.db,
            order.customer_id,
            f"وضعیت سفارش {order.code}",
            f"وضعیت سفارش شما به «{label}» تغییر کرد.",
            link=f"/orders/{order.id}",
            notification_type="error" if order.status == order_status.REJECTED else "info",
            suppressed=ctx.is_impersonating,
        )
        await order_sms_service.send_status_sms(self.db, order, suppressed=ctx.is_impersonating)
        if new_status == order_status.PENDING:
            await notification_service.notify_managers_new_order(
                self.db, order, notification_service.MESSAGE_NEW_ORDER, suppressed=ctx.is_impersonating
            )
            await order_sms_service.send_ceo_sms(
                order, order_sms_service.CEO_NEW_ORDER, suppressed=ctx.is_impersonating
            )
        return order

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    async def set_payment_amount(self, order_id: int, amount: int, ctx: AuthContext) -> Order:
        """
        Set the price (Toman) an expert quoted for the order.

        The price is frozen once paid, once the order is closed or rejected,
        and once the customer has started a gateway payment for it.
        """
        order = self.get_order(order_id, ctx)
        if (
            order.payment_confirmed_at
            or order.status == order_status.PAID
            or order_status.is_terminal(order.status)
        ):
            raise HTTPException(status_code=409, detail="The price of this order can no longer change")
        if zarinpal_service.has_payment_request(self.db, order.id):
            raise HTTPException(status_code=409, detail="A payment was already started for this price")

        previous = order.payment_amount
        order.payment_amount = amount
        record_audit(
            self.db,
            action="order_price_set",
            entity="orders",
            entity_id=order.id,
            actor_user_id=ctx.user.id,
            meta={"from": previous, "to": amount},
        )
        self.db.commit()
        self.db.refresh(order)

        notification_service.create_notification(
            self.db,
            order.customer_id,
            f"قیمت سفارش {order.code}",
            f"مبلغ سفارش شما {amount:,} تومان تعیین شد.",
            link=f"/orders/{order.id}",
            suppressed=ctx.is_impersonating,
        )
        await order_sms_service.send_customer_sms(
            self.db, order, order_sms_service.AWAITING_PAYMENT, suppressed=ctx.is_impersonating
        )
        return order

    async def confirm_price(self, order_id: int, ctx: AuthContext) -> Order:
        """Customer accepts the quoted price; managers are told the order is ready"""
        order = self.get_order(order_id, ctx)
        if order.customer_id != ctx.user.id:
            raise HTTPException(status_code=403, detail="Only the customer can confirm the price")
        if not order.payment_amount:
            raise HTTPException(status_code=409, detail="No price has been set for this order")

        record_audit(
            self.db,
            action="order_price_confirmed",
            entity="orders",
            entity_id=order.id,
            actor_user_id=ctx.user.id,
            meta={"amount": order.payment_amount},
            commit=True,
        )
        await notification_service.notify_managers_new_order(
            self.db,
            order,
            notification_service.MESSAGE_EXPERT_PRICE_CONFIRMED,
            suppressed=ctx.is_impersonating,
        )
        return order

    # ------------------------------------------------------------------
    # Archiving
    # ------------------------------------------------------------------

    def archive_order(self, order_id: int, ctx: AuthContext) -> Order:
        order = self.repo.get_order_by_id(self.db, order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        if order.is_archived:
            return order

        self.repo.archive(self.db, order, ctx.user.id)
        record_audit(
            self.db,
            action="order_archived",
            entity="orders",
            entity_id=order.id,
            actor_user_id=ctx.user.id,
        )
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.code} archived by user {ctx.user.id}")
        return order

    def bulk_archive(self, order_ids: list[int], ctx: AuthContext) -> dict:
        """Archive several orders at once. Unknown or already archived ids are skipped."""
        if not order_ids:
            raise HTTPException(status_code=400, detail="No order IDs provided")

        archived_ids = []
        for order_id in dict.fromkeys(order_ids):
            order = self.repo.get_order_by_id(self.db, order_id)
            if order and not order.is_archived:
                self.repo.archive(self.db, order, ctx.user.id)
                archived_ids.append(order.id)

        if archived_ids:
            record_audit(
                self.db,
                action="orders_bulk_archived",
                entity="orders",
                actor_user_id=ctx.user.id,
                meta={"order_ids": archived_ids},
            )
        self.db.commit()
        logger.info(f"Bulk archived {len(archived_ids)} order(s) by user {ctx.user.id}")
        return {"archived": len(archived_ids), "order_ids": archived_ids}
