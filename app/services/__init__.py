"""Services package"""

from .order_service import OrderService, OrderStateMachine
from .delivery_confirmation import DeliveryConfirmationGate
from .review_eligibility import ReviewEligibilityResolver
from .review_service import ReviewService
from .coupon_service import CouponService

__all__ = [
    "OrderService",
    "OrderStateMachine",
    "DeliveryConfirmationGate",
    "ReviewEligibilityResolver",
    "ReviewService",
    "CouponService",
]
