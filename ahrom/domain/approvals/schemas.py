"""Approval ledger schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ApprovalResponse(BaseModel):
    id: int
    approver_role: str
    role_label: str
    approver_user_id: Optional[int] = None
    approver_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ApprovalProgress(BaseModel):
    completed: int
    total: int
    ratio: float
    percent: int
    is_complete: bool


class ApprovalLedgerResponse(BaseModel):
    order_id: int
    order_code: str
    approvals: list[ApprovalResponse]
    progress: ApprovalProgress


class RecordApprovalResponse(BaseModel):
    recorded: bool
    already_approved: bool = False
    message: str
    progress: ApprovalProgress
