"""Review and review-eligibility schemas."""

from typing import Optional, List, Dict
from datetime import datetime
from pydantic import BaseModel, Field
import enum
import uuid

from app.models.review import ReviewStatus


class EligibilityReason(str, enum.Enum):
    NO_DELIVERED_ORDER = "no_delivered_order"
    WAITING_FOR_DELIVERY_CONFIRMATION = "waiting_for_delivery_confirmation"
    ALREADY_REVIEWED_ALL_ORDERS = "already_reviewed_all_orders"


ELIGIBILITY_MESSAGES = {
    None: "You can review this product",
    EligibilityReason.NO_DELIVERED_ORDER: "Product must be delivered before you can review it",
    EligibilityReason.WAITING_FOR_DELIVERY_CONFIRMATION: (
        "Please confirm receipt of the product before reviewing (or wait 1 day for auto-confirm)"
    ),
    EligibilityReason.ALREADY_REVIEWED_ALL_ORDERS: (
        "You have already reviewed this product from all eligible orders"
    ),
}


class EligibilityResult(BaseModel):
    """Answer to "can this user review this product?"

    A negative answer is a normal outcome, not an error.
    """

    can_review: bool
    order_id: Optional[uuid.UUID] = None
    reason: Optional[EligibilityReason] = None
    message: str = ""
    can_review_at: Optional[datetime] = None

    @classmethod
    def allowed(cls, order_id: uuid.UUID) -> "EligibilityResult":
        return cls(can_review=True, order_id=order_id, message=ELIGIBILITY_MESSAGES[None])

    @classmethod
    def denied(
        cls,
        reason: EligibilityReason,
        can_review_at: Optional[datetime] = None,
    ) -> "EligibilityResult":
        return cls(
            can_review=False,
            reason=reason,
            message=ELIGIBILITY_MESSAGES[reason],
            can_review_at=can_review_at,
        )


class ReviewResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    user_id: uuid.UUID
    order_id: uuid.UUID
    user_name: Optional[str] = None
    rating: int
    title: str
    comment: str
    helpful_count: int = 0
    status: ReviewStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReviewSort(str, enum.Enum):
    NEWEST = "newest"
    HELPFUL = "helpful"
    RATING_HIGH = "rating-high"
    RATING_LOW = "rating-low"


class ProductReviewsResponse(BaseModel):
    reviews: List[ReviewResponse] = []
    total_reviews: int = 0
    average_rating: float = 0.0
    rating_distribution: Dict[int, int] = Field(
        default_factory=lambda: {5: 0, 4: 0, 3: 0, 2: 0, 1: 0}
    )
    current_page: int = 1
    total_pages: int = 0
