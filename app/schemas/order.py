"""Order schemas for request/result models."""

from typing import Optional, List, Dict, Any
from decimal import Decimal
from datetime import datetime
from pydantic import BaseModel, Field
import enum
import uuid

from app.models.order import OrderStatus, PaymentStatus, PaymentMethod


class OrderItemCreate(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(..., ge=1, description="Units ordered")


class OrderCreate(BaseModel):
    items: List[OrderItemCreate] = Field(..., min_length=1)
    payment_method: PaymentMethod = Field(..., description="Payment method")
    shipping_address: Optional[Dict[str, Any]] = Field(None, description="Shipping address snapshot")
    notes: Optional[str] = Field(None, max_length=500, description="Order notes")
    coupon_code: Optional[str] = Field(None, max_length=50, description="Coupon code to apply at checkout")


class OrderItemResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    product_name: str
    unit_price: Decimal
    quantity: int
    total_price: Decimal

    class Config:
        from_attributes = True


class TimelineEntryResponse(BaseModel):
    status: OrderStatus
    timestamp: datetime
    note: Optional[str] = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    coupon_code: Optional[str] = None
    tracking_number: Optional[str] = None

    # Delivery
    shipped_date: Optional[datetime] = None
    delivered_date: Optional[datetime] = None
    delivery_confirmed: bool = False
    delivery_confirmed_date: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    items: List[OrderItemResponse] = []
    timeline: List[TimelineEntryResponse] = []

    class Config:
        from_attributes = True


class OrderStatsResponse(BaseModel):
    total_orders: int = 0
    pending_orders: int = 0
    processing_orders: int = 0
    shipped_orders: int = 0
    delivered_orders: int = 0
    cancelled_orders: int = 0
    pending_payments: int = 0
    completed_payments: int = 0
    failed_payments: int = 0
    total_revenue: Decimal = Decimal("0")


class ConfirmationState(str, enum.Enum):
    """Delivery confirmation sub-state of an order"""
    NOT_DELIVERED = "not_delivered"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"


class ConfirmationResult(BaseModel):
    order_id: uuid.UUID
    state: ConfirmationState
    confirmed_at: Optional[datetime] = None
    auto_confirm_at: Optional[datetime] = None

    @property
    def is_confirmed(self) -> bool:
        return self.state == ConfirmationState.CONFIRMED
