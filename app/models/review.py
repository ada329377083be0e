"""
Product review and rating model
"""

from sqlalchemy import Column, String, Integer, Text, Enum, ForeignKey, Index, UniqueConstraint, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel, SerializableMixin


class ReviewStatus(str, enum.Enum):
    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"


class Review(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Product reviews and ratings, one per product per order per user"""

    __tablename__ = "reviews"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False)
    user_id = Column(Uuid(as_uuid=True), nullable=False)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id"), nullable=False)
    user_name = Column(String(100), nullable=True)

    # Review content
    rating = Column(Integer, nullable=False)
    title = Column(String(100), nullable=False)
    comment = Column(Text, nullable=False)

    # Engagement
    helpful_count = Column(Integer, default=0, nullable=False)

    # Status
    status = Column(Enum(ReviewStatus), default=ReviewStatus.APPROVED, nullable=False)

    # Relationships
    product = relationship("Product", back_populates="reviews")
    order = relationship("Order", back_populates="reviews")
    helpful_votes = relationship(
        "ReviewHelpfulVote",
        back_populates="review",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Constraints
    __table_args__ = (
        UniqueConstraint("product_id", "user_id", "order_id", name="uq_product_user_order_review"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="check_rating_range"),
        CheckConstraint("helpful_count >= 0", name="check_non_negative_helpful"),
        Index("idx_reviews_product_status", "product_id", "status"),
        Index("idx_reviews_user", "user_id"),
    )

    @property
    def helpful_by(self):
        """Set of user ids that marked this review helpful"""
        return {vote.user_id for vote in self.helpful_votes}


class ReviewHelpfulVote(Base, TimestampedModel, UUIDModel):
    """A single user's helpful mark on a review"""

    __tablename__ = "review_helpful_votes"

    review_id = Column(Uuid(as_uuid=True), ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid(as_uuid=True), nullable=False)

    review = relationship("Review", back_populates="helpful_votes")

    __table_args__ = (
        UniqueConstraint("review_id", "user_id", name="uq_review_helpful_user"),
    )
