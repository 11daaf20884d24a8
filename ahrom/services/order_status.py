"""
Order status rules
Transition table, display labels and the role gate for each target status
"""

import logging
from typing import Iterable

from ..models import Order
from ..roles import EXECUTION_ROLES, FINANCE_ROLES, ORDER_REVIEW_ROLES, STAFF_ROLES, has_any_role

logger = logging.getLogger(__name__)

DRAFT = "draft"
PENDING = "pending"
APPROVED = "approved"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
PAID = "paid"
CLOSED = "closed"
REJECTED = "rejected"

ORDER_STATUSES = [DRAFT, PENDING, APPROVED, IN_PROGRESS, COMPLETED, PAID, CLOSED, REJECTED]

VALID_TRANSITIONS = {
    DRAFT: [PENDING, REJECTED],
    PENDING: [APPROVED, REJECTED],
    APPROVED: [IN_PROGRESS, REJECTED],
    IN_PROGRESS: [COMPLETED],
    COMPLETED: [PAID],
    PAID: [CLOSED],
    CLOSED: [],  # Terminal state
    REJECTED: [],  # Terminal state
}

# Statuses in which the customer may settle the price through the gateway
PAYABLE_STATUSES = [APPROVED, IN_PROGRESS, COMPLETED]

STATUS_DISPLAY = {
    DRAFT: {"label": "پیش‌نویس", "color": "outline"},
    PENDING: {"label": "در انتظار", "color": "outline"},
    APPROVED: {"label": "تایید شده", "color": "default"},
    IN_PROGRESS: {"label": "در حال انجام", "color": "default"},
    COMPLETED: {"label": "تکمیل شده", "color": "secondary"},
    PAID: {"label": "پرداخت شده", "color": "secondary"},
    CLOSED: {"label": "بسته شده", "color": "secondary"},
    REJECTED: {"label": "رد شده", "color": "destructive"},
}

# Target status -> roles allowed to move an order into it
TRANSITION_ROLES = {
    APPROVED: ORDER_REVIEW_ROLES,
    REJECTED: ORDER_REVIEW_ROLES,
    IN_PROGRESS: EXECUTION_ROLES,
    COMPLETED: EXECUTION_ROLES,
    PAID: FINANCE_ROLES,
    CLOSED: FINANCE_ROLES,
}


def status_display(status: str) -> dict:
    """Label and badge color for a status; unknown values render as themselves"""
    return STATUS_DISPLAY.get(status, {"label": status, "color": "outline"})


def is_terminal(status: str) -> bool:
    return status in VALID_TRANSITIONS and not VALID_TRANSITIONS[status]


def validate_status_transition(current_status: str, new_status: str) -> bool:
    """
    Validate if a status transition is allowed

    Args:
        current_status: Current order status
        new_status: Desired new status

    Returns:
        bool: True if transition is valid
    """
    if new_status not in VALID_TRANSITIONS:
        return False

    # Allow same status (no-op)
    if current_status == new_status:
        return True

    return new_status in VALID_TRANSITIONS.get(current_status, [])


def can_actor_transition(order: Order, new_status: str, actor_id: int, actor_roles: Iterable[str]) -> bool:
    """Role gate for moving `order` into `new_status`"""
    if new_status == PENDING:
        # Submitting a draft: the owning customer or any staff member
        return order.customer_id == actor_id or has_any_role(actor_roles, STAFF_ROLES)

    allowed = TRANSITION_ROLES.get(new_status)
    if allowed is None:
        return False
    return has_any_role(actor_roles, allowed)


def get_next_required_action(order: Order) -> str:
    """Human readable next step for an order, shown on dashboards"""
    if order.status == DRAFT:
        return "Waiting for the customer to submit the order"
    if order.status == PENDING:
        return "Waiting for manager approvals"
    if order.status == APPROVED:
        return "Ready to start execution"
    if order.status == IN_PROGRESS:
        return "Work in progress"
    if order.status == COMPLETED:
        if order.payment_confirmed_at:
            return "Paid in advance, ready to mark paid"
        return "Waiting for payment"
    if order.status == PAID:
        return "Paid, ready to close"
    if order.status == CLOSED:
        return "Order closed"
    if order.status == REJECTED:
        return "Order was rejected"
    return "Unknown status"
