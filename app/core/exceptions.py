"""
Custom exception classes
Provides consistent, typed errors for the calling boundary to translate
"""

from fastapi import HTTPException, status
from typing import Any, Dict, Optional
from datetime import datetime


class StorefrontException(HTTPException):
    """Base exception class for the storefront core"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Plain payload for HTTP layers and test harnesses"""
        return {
            "success": False,
            "error_code": self.error_code,
            "message": self.detail,
        }


class BadRequestException(StorefrontException):
    """400 Bad Request"""

    def __init__(self, detail: str, error_code: str = "BAD_REQUEST"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code,
        )


class ForbiddenException(StorefrontException):
    """403 Forbidden"""

    def __init__(self, detail: str = "Forbidden", error_code: str = "FORBIDDEN"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=error_code,
        )


class NotFoundException(StorefrontException):
    """404 Not Found"""

    def __init__(self, detail: str = "Not found", error_code: str = "NOT_FOUND"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code=error_code,
        )


class ConflictException(StorefrontException):
    """409 Conflict"""

    def __init__(self, detail: str, error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code,
        )


class ValidationException(StorefrontException):
    """422 Unprocessable Entity"""

    def __init__(self, detail: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code,
        )


# Ownership
class UnauthorizedException(ForbiddenException):
    """Caller does not own the order or review being acted on"""

    def __init__(self, detail: str = "You do not have permission to act on this resource"):
        super().__init__(detail=detail, error_code="UNAUTHORIZED")


# Lookups
class OrderNotFoundException(NotFoundException):

    def __init__(self, order_id: Any = None):
        detail = f"Order {order_id} not found" if order_id else "Order not found"
        super().__init__(detail=detail, error_code="ORDER_NOT_FOUND")
        self.order_id = order_id


class ProductNotFoundException(NotFoundException):

    def __init__(self, product_id: Any = None):
        detail = f"Product {product_id} not found" if product_id else "Product not found"
        super().__init__(detail=detail, error_code="PRODUCT_NOT_FOUND")
        self.product_id = product_id


class ReviewNotFoundException(NotFoundException):

    def __init__(self, review_id: Any = None):
        detail = f"Review {review_id} not found" if review_id else "Review not found"
        super().__init__(detail=detail, error_code="REVIEW_NOT_FOUND")
        self.review_id = review_id


# Order lifecycle
class InvalidTransitionException(BadRequestException):
    """Order status transition not allowed from the current status"""

    def __init__(self, current_status: Any, new_status: Any, detail: Optional[str] = None):
        current = getattr(current_status, "value", current_status)
        target = getattr(new_status, "value", new_status)
        super().__init__(
            detail=detail or f"Invalid status transition from {current} to {target}",
            error_code="INVALID_TRANSITION",
        )
        self.current_status = current_status
        self.new_status = new_status


class InsufficientStockException(BadRequestException):
    """Product stock insufficient"""

    def __init__(self, product_name: str, available: int):
        super().__init__(
            detail=f"Insufficient stock for {product_name}. Only {available} available.",
            error_code="INSUFFICIENT_STOCK",
        )


# Review eligibility
class ProductNotInOrderException(BadRequestException):

    def __init__(self, detail: str = "This product is not in your order"):
        super().__init__(detail=detail, error_code="PRODUCT_NOT_IN_ORDER")


class NotDeliveredException(BadRequestException):

    def __init__(self, order_status: Any = None):
        super().__init__(
            detail="Product must be delivered before you can review it",
            error_code="NOT_DELIVERED",
        )
        self.order_status = getattr(order_status, "value", order_status)


class ConfirmationPendingException(BadRequestException):

    def __init__(self, can_review_at: Optional[datetime] = None):
        super().__init__(
            detail="Please confirm receipt of the product before reviewing",
            error_code="CONFIRMATION_PENDING",
        )
        self.can_review_at = can_review_at

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.can_review_at:
            payload["can_review_at"] = self.can_review_at.isoformat()
        return payload


class DuplicateReviewException(ConflictException):

    def __init__(self, detail: str = "You have already reviewed this product from this order"):
        super().__init__(detail=detail, error_code="DUPLICATE_REVIEW")


class InvalidRatingException(ValidationException):

    def __init__(self, detail: str = "Rating must be between 1 and 5"):
        super().__init__(detail=detail, error_code="INVALID_RATING")


class MissingFieldException(ValidationException):

    def __init__(self, *fields: str):
        detail = (
            f"Please provide {', '.join(fields)}" if fields else "Required field missing"
        )
        super().__init__(detail=detail, error_code="MISSING_FIELD")
        self.fields = list(fields)


# Coupons
class CouponNotFoundException(NotFoundException):

    def __init__(self, code: Any = None):
        super().__init__(detail="Coupon not found", error_code="COUPON_NOT_FOUND")
        self.code = code


class InvalidCouponException(BadRequestException):
    """Coupon exists but cannot be used for this user or cart"""

    def __init__(self, detail: str = "Coupon cannot be applied"):
        super().__init__(detail=detail, error_code="INVALID_COUPON")
