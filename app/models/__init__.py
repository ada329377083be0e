"""Models package initialization"""

from .base import Base
from .product import Product
from .order import Order, OrderItem, OrderStatus, PaymentStatus, PaymentMethod, OrderTimelineEntry
from .review import Review, ReviewHelpfulVote, ReviewStatus
from .coupon import Coupon, CouponUsage, DiscountType

# Export all models
__all__ = [
    "Base",
    "Product",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "OrderTimelineEntry",
    "Review",
    "ReviewHelpfulVote",
    "ReviewStatus",
    "Coupon",
    "CouponUsage",
    "DiscountType",
]
