"""Order domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OrderCreate(BaseModel):
    """Schema for creating a new order"""

    service_type: str = Field(..., min_length=1, max_length=100)
    address: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    notes: Optional[str] = None
    submit: bool = True  # False keeps the order as a draft


class OrderStatusUpdate(BaseModel):
    status: str


class PaymentAmountUpdate(BaseModel):
    payment_amount: int = Field(..., gt=0)  # Toman


class BulkArchiveRequest(BaseModel):
    order_ids: list[int]


class OrderResponse(BaseModel):
    """Schema for order response"""

    id: int
    code: str
    customer_id: int
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    service_type: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    notes: Optional[str] = None
    status: str
    status_label: str
    status_color: str
    next_action: str
    payment_amount: Optional[int] = None
    payment_confirmed_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    transaction_reference: Optional[str] = None
    is_archived: bool
    archived_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BulkArchiveResponse(BaseModel):
    archived: int
    order_ids: list[int]
