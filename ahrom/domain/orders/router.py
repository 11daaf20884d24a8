"""Order router - FastAPI endpoints for order operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import AuthContext, get_auth_context, require_roles
from ...database import get_db
from ...models import Order
from ...roles import ADMIN_ROLES, FINANCE_ROLES, ORDER_REVIEW_ROLES
from ...services import order_status
from .schemas import (
    BulkArchiveRequest,
    BulkArchiveResponse,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
    PaymentAmountUpdate,
)
from .service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])

require_admin = require_roles(*ADMIN_ROLES)
require_pricing = require_roles(*(ORDER_REVIEW_ROLES | FINANCE_ROLES))


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    """Dependency injection for OrderService"""
    return OrderService(db)


def to_response(order: Order) -> OrderResponse:
    display = order_status.status_display(order.status)
    customer = order.customer
    return OrderResponse(
        id=order.id,
        code=order.code,
        customer_id=order.customer_id,
        customer_name=customer.full_name if customer else None,
        customer_phone=customer.phone_number if customer else None,
        service_type=order.service_type,
        address=order.address,
        latitude=order.latitude,
        longitude=order.longitude,
        notes=order.notes,
        status=order.status,
        status_label=display["label"],
        status_color=display["color"],
        next_action=order_status.get_next_required_action(order),
        payment_amount=order.payment_amount,
        payment_confirmed_at=order.payment_confirmed_at,
        payment_method=order.payment_method,
        transaction_reference=order.transaction_reference,
        is_archived=bool(order.is_archived),
        archived_at=order.archived_at,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[OrderResponse])
async def list_orders(
    ctx: AuthContext = Depends(get_auth_context),
    service: OrderService = Depends(get_order_service),
    status: Optional[str] = Query(None, description="Filter orders by status"),
    include_archived: bool = Query(False, description="Include archived orders"),
):
    """Orders visible to the caller, newest first"""
    return [to_response(o) for o in service.list_orders(ctx, status, include_archived)]


@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    data: OrderCreate,
    ctx: AuthContext = Depends(get_auth_context),
    service: OrderService = Depends(get_order_service),
):
    order = await service.create_order(data, ctx)
    return to_response(order)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    service: OrderService = Depends(get_order_service),
):
    return to_response(service.get_order(order_id, ctx))


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def change_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    ctx: AuthContext = Depends(get_auth_context),
    service: OrderService = Depends(get_order_service),
):
    """Move an order through its lifecycle"""
    order = await service.change_status(order_id, data.status, ctx)
    return to_response(order)


@router.patch("/{order_id}/payment-amount", response_model=OrderResponse)
async def set_order_payment_amount(
    order_id: int,
    data: PaymentAmountUpdate,
    ctx: AuthContext = Depends(require_pricing),
    service: OrderService = Depends(get_order_service),
):
    return to_response(await service.set_payment_amount(order_id, data.payment_amount, ctx))


@router.post("/{order_id}/confirm-price", response_model=OrderResponse)
async def confirm_order_price(
    order_id: int,
    ctx: AuthContext = Depends(get_auth_context),
    service: OrderService = Depends(get_order_service),
):
    """Customer accepts the quoted price"""
    order = await service.confirm_price(order_id, ctx)
    return to_response(order)


# ============================================================================
# ARCHIVING (admin only)
# ============================================================================


@router.post("/bulk-archive", response_model=BulkArchiveResponse)
async def bulk_archive_orders(
    data: BulkArchiveRequest,
    ctx: AuthContext = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return service.bulk_archive(data.order_ids, ctx)


@router.post("/{order_id}/archive", response_model=OrderResponse)
async def archive_order(
    order_id: int,
    ctx: AuthContext = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    return to_response(service.archive_order(order_id, ctx))
