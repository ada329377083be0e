"""
Coupon and discount models
"""

from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean, Enum, ForeignKey, Index, CheckConstraint, Text, DateTime, Uuid,
)
from sqlalchemy.orm import relationship
from decimal import Decimal, ROUND_HALF_UP
import enum

from .base import Base, TimestampedModel, UUIDModel, SerializableMixin

CENTS = Decimal("0.01")


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class Coupon(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Discount coupons and promo codes"""

    __tablename__ = "coupons"

    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)

    # Discount details
    discount_type = Column(Enum(DiscountType), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)

    # Conditions
    min_order_value = Column(Numeric(10, 2), nullable=False, default=0)
    max_discount = Column(Numeric(10, 2), nullable=True)

    # Usage limits
    usage_limit = Column(Integer, nullable=True)  # None is unlimited
    usage_limit_per_user = Column(Integer, nullable=False, default=1)
    used_count = Column(Integer, nullable=False, default=0)

    # Validity
    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False)

    # Status
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    usages = relationship("CouponUsage", back_populates="coupon", cascade="all, delete-orphan")

    # Constraints
    __table_args__ = (
        CheckConstraint("discount_value >= 0", name="check_non_negative_discount"),
        CheckConstraint("usage_limit IS NULL OR usage_limit > 0", name="check_positive_usage_limit"),
        CheckConstraint("usage_limit_per_user >= 1", name="check_positive_usage_limit_per_user"),
        CheckConstraint("valid_until > valid_from", name="check_coupon_validity_window"),
        Index("idx_coupons_active_valid", "is_active", "valid_from", "valid_until"),
    )

    def calculate_discount(self, amount: Decimal) -> Decimal:
        """Discount for ``amount``, capped by ``max_discount`` and never above the amount"""
        amount = Decimal(amount)
        if self.discount_type == DiscountType.PERCENTAGE:
            discount = (amount * Decimal(self.discount_value) / 100).quantize(CENTS, ROUND_HALF_UP)
            if self.max_discount is not None:
                discount = min(discount, Decimal(self.max_discount))
        else:
            discount = Decimal(self.discount_value)
        return min(discount, amount)


class CouponUsage(Base, TimestampedModel, UUIDModel):
    """One use of a coupon by a user on an order"""

    __tablename__ = "coupon_usages"

    coupon_id = Column(Uuid(as_uuid=True), ForeignKey("coupons.id"), nullable=False)
    user_id = Column(Uuid(as_uuid=True), nullable=False)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id"), nullable=False)

    # Discount applied
    discount_amount = Column(Numeric(10, 2), nullable=False)

    # Relationships
    coupon = relationship("Coupon", back_populates="usages")

    # Indexes
    __table_args__ = (
        Index("idx_coupon_usages_coupon_user", "coupon_id", "user_id"),
        Index("idx_coupon_usages_order", "order_id"),
    )
