"""
Role resolution.

Roles are independent string tags attached to a user. There is no hierarchy or
inheritance: a user either holds a tag or does not, and every permission check
is a set membership test.
"""

import logging
from typing import Iterable

from sqlalchemy.orm import Session

from .models import UserRole

logger = logging.getLogger(__name__)

ADMIN = "admin"
CEO = "ceo"
GENERAL_MANAGER = "general_manager"
SALES_MANAGER = "sales_manager"
FINANCE_MANAGER = "finance_manager"
CONTRACTOR = "contractor"
SCAFFOLD_EXECUTIVE_MANAGER = "scaffold_executive_manager"
RENTAL_EXECUTIVE_MANAGER = "rental_executive_manager"
CUSTOMER = "customer"

# Most privileged first; used to pick the dashboard for users holding several roles
VIEW_PRECEDENCE = [
    ADMIN,
    CEO,
    GENERAL_MANAGER,
    FINANCE_MANAGER,
    SALES_MANAGER,
    SCAFFOLD_EXECUTIVE_MANAGER,
    RENTAL_EXECUTIVE_MANAGER,
    CONTRACTOR,
    CUSTOMER,
]

IMPERSONATION_ROLES = frozenset({ADMIN, CEO, GENERAL_MANAGER})
ADMIN_ROLES = frozenset({ADMIN, CEO, GENERAL_MANAGER})
MANAGER_ROLES = frozenset({SALES_MANAGER, GENERAL_MANAGER, ADMIN, CEO})
ORDER_REVIEW_ROLES = frozenset({ADMIN, CEO, GENERAL_MANAGER, SALES_MANAGER})
EXECUTION_ROLES = frozenset(
    {ADMIN, GENERAL_MANAGER, CONTRACTOR, SCAFFOLD_EXECUTIVE_MANAGER, RENTAL_EXECUTIVE_MANAGER}
)
FINANCE_ROLES = frozenset({ADMIN, CEO, FINANCE_MANAGER})
STAFF_ROLES = frozenset(set(VIEW_PRECEDENCE) - {CUSTOMER})

ROLE_LABELS = {
    ADMIN: "مدیر سیستم",
    CEO: "مدیرعامل",
    GENERAL_MANAGER: "مدیر کل",
    SALES_MANAGER: "مدیر فروش",
    FINANCE_MANAGER: "مدیر مالی",
    CONTRACTOR: "پیمانکار",
    SCAFFOLD_EXECUTIVE_MANAGER: "مدیر اجرایی",
    RENTAL_EXECUTIVE_MANAGER: "مدیر اجرایی کرایه",
    CUSTOMER: "مشتری",
}


def get_user_roles(db: Session, user_id: int) -> set[str]:
    """Fetch every role tag held by a user"""
    rows = db.query(UserRole.role).filter(UserRole.user_id == user_id).all()
    return {row[0] for row in rows}


def has_role(roles: Iterable[str], role: str) -> bool:
    return role in set(roles)


def has_any_role(roles: Iterable[str], required: Iterable[str]) -> bool:
    return bool(set(roles) & set(required))


def primary_view(roles: Iterable[str]) -> str:
    """Pick the most privileged view among the roles a user holds"""
    held = set(roles)
    for role in VIEW_PRECEDENCE:
        if role in held:
            return role
    return CUSTOMER


def grant_role(db: Session, user_id: int, role: str) -> bool:
    """Attach a role to a user. Returns False if the user already held it."""
    existing = (
        db.query(UserRole).filter(UserRole.user_id == user_id, UserRole.role == role).first()
    )
    if existing:
        return False
    db.add(UserRole(user_id=user_id, role=role))
    db.flush()
    logger.info(f"Role '{role}' granted to user {user_id}")
    return True


def revoke_role(db: Session, user_id: int, role: str) -> bool:
    deleted = (
        db.query(UserRole)
        .filter(UserRole.user_id == user_id, UserRole.role == role)
        .delete(synchronize_session="fetch")
    )
    if deleted:
        logger.info(f"Role '{role}' revoked from user {user_id}")
    return bool(deleted)


def user_ids_with_roles(db: Session, roles: Iterable[str]) -> list[int]:
    """Distinct ids of users holding any of the given roles"""
    rows = db.query(UserRole.user_id).filter(UserRole.role.in_(list(roles))).distinct().all()
    return sorted({row[0] for row in rows})
