"""Approval router - FastAPI endpoints for the approval ledger"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import AuthContext, get_auth_context
from ...database import get_db
from ...roles import has_role
from ...services import order_status
from ..orders.router import get_order_service
from ..orders.service import OrderService
from .schemas import ApprovalLedgerResponse, RecordApprovalResponse
from .service import ApprovalService, approval_progress, approval_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Approvals"])


def get_approval_service(db: Session = Depends(get_db)) -> ApprovalService:
    """Dependency injection for ApprovalService"""
    return ApprovalService(db)


@router.get("/{order_id}/approvals", response_model=ApprovalLedgerResponse)
async def list_order_approvals(
    order_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    orders: OrderService = Depends(get_order_service),
    service: ApprovalService = Depends(get_approval_service),
):
    """Ledger rows of an order with the approval progress"""
    order = orders.get_order(order_id, ctx)
    rows = service.list_approvals(order.id)
    return {
        "order_id": order.id,
        "order_code": order.code,
        "approvals": [approval_to_dict(row) for row in rows],
        "progress": approval_progress(rows),
    }


@router.post("/{order_id}/approvals/{role}/approve", response_model=RecordApprovalResponse)
async def approve_order_as_role(
    order_id: int,
    role: str,
    ctx: AuthContext = Depends(get_auth_context),
    orders: OrderService = Depends(get_order_service),
    service: ApprovalService = Depends(get_approval_service),
):
    """Sign off an order on behalf of one of the caller's roles"""
    if not has_role(ctx.roles, role):
        logger.warning(f"User {ctx.user.id} tried to approve as '{role}' without holding it")
        raise HTTPException(status_code=403, detail="شما نقش لازم برای این تایید را ندارید")

    order = orders.get_order(order_id, ctx)
    if order.status != order_status.PENDING:
        raise HTTPException(status_code=409, detail="Order is not awaiting approval")

    result = service.record_approval(order.id, role, ctx.user.id)
    if result["recorded"]:
        message = "تایید ثبت شد"
    elif result["already_approved"]:
        message = "این نقش قبلاً تایید کرده است"
    else:
        message = "این نقش برای سفارش نیازی به تایید ندارد"

    return {**result, "message": message, "progress": service.progress(order.id)}
