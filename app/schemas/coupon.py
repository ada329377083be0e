"""Coupon schemas."""

from typing import Optional
from decimal import Decimal
from datetime import datetime
from pydantic import BaseModel
import uuid

from app.models.coupon import DiscountType


class CouponResponse(BaseModel):
    id: uuid.UUID
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    min_order_value: Decimal
    max_discount: Optional[Decimal] = None
    valid_from: datetime
    valid_until: datetime

    class Config:
        from_attributes = True


class CouponValidation(BaseModel):
    """A coupon accepted for a cart, with the discount it gives"""
    coupon_id: uuid.UUID
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    discount_amount: Decimal
    final_total: Decimal
