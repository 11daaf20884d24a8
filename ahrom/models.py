from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    phone_number = Column(String(20), unique=True, index=True, nullable=False)  # 09XXXXXXXXX
    full_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    password_hash = Column(String(255), nullable=True)  # bcrypt, optional next to OTP
    password_set_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="customer", foreign_keys="Order.customer_id")
    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )


class UserRole(Base):
    """Role tag held by a user. A user may hold several; there is no hierarchy."""

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="roles")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), unique=True, index=True, nullable=False)  # ORD-1001
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_type = Column(String(100), nullable=False)
    address = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    # draft, pending, approved, in_progress, completed, paid, closed, rejected
    status = Column(String(32), default="pending", nullable=False, index=True)
    payment_amount = Column(Integer, nullable=True)  # Toman
    payment_confirmed_at = Column(DateTime, nullable=True)
    payment_method = Column(String(50), nullable=True)
    transaction_reference = Column(String(100), nullable=True)
    is_archived = Column(Boolean, default=False, nullable=False, index=True)
    archived_at = Column(DateTime, nullable=True)
    archived_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("User", back_populates="orders", foreign_keys=[customer_id])
    approvals = relationship(
        "OrderApproval",
        back_populates="order",
        order_by="OrderApproval.id",
        cascade="all, delete-orphan",
    )


class OrderApproval(Base):
    """One required sign-off slot for an order, tied to a role"""

    __tablename__ = "order_approvals"
    __table_args__ = (
        UniqueConstraint("order_id", "approver_role", name="uq_order_approvals_order_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    approver_role = Column(String(64), nullable=False)
    approver_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # Null until approved
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    order = relationship("Order", back_populates="approvals")
    approver = relationship("User", foreign_keys=[approver_user_id])


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    link = Column(String(500), nullable=True)
    type = Column(String(32), default="info", nullable=False)  # info, success, warning, error
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)

    user = relationship("User", back_populates="notifications")


class WhitelistEntry(Base):
    """Pre-approved phone numbers consulted at registration time"""

    __tablename__ = "whitelist_entries"
    __table_args__ = (
        UniqueConstraint("phone_number", "kind", name="uq_whitelist_phone_kind"),
    )

    id = Column(Integer, primary_key=True, index=True)
    phone_number = Column(String(20), nullable=False, index=True)
    kind = Column(String(20), default="phone", nullable=False)  # phone, staff, ceo_access
    allowed_roles = Column(JSON, default=list, nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class OtpCode(Base):
    __tablename__ = "otp_codes"

    id = Column(Integer, primary_key=True, index=True)
    phone_number = Column(String(20), nullable=False, index=True)
    code = Column(String(10), nullable=False)
    purpose = Column(String(32), default="login", nullable=False)  # login, module_delete
    expires_at = Column(DateTime, nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(100), nullable=False, index=True)
    entity = Column(String(100), nullable=False)
    entity_id = Column(String(100), nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class ImpersonationSession(Base):
    __tablename__ = "impersonation_sessions"

    id = Column(Integer, primary_key=True, index=True)
    admin_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    target_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    started_at = Column(DateTime, server_default=func.now())
    ended_at = Column(DateTime, nullable=True)


class DailyReportDateLock(Base):
    """Finalization lock for a report date; the unique constraint detects lock races"""

    __tablename__ = "daily_report_date_locks"

    id = Column(Integer, primary_key=True, index=True)
    report_date = Column(Date, unique=True, nullable=False)
    locked_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    locked_by_module_key = Column(String(100), default="aggregated", nullable=False)
    locked_at = Column(DateTime, server_default=func.now())

    locker = relationship("User")


class ModuleVersion(Base):
    __tablename__ = "module_version_history"
    __table_args__ = (
        UniqueConstraint(
            "module_key", "module_date", "version_number", name="uq_module_version_number"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    module_key = Column(String(100), nullable=False, index=True)
    module_date = Column(Date, nullable=False)
    version_number = Column(Integer, nullable=False)
    saved_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    data_snapshot = Column(JSON, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
