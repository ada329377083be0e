"""Product model (inventory and review aggregate fields)"""

from sqlalchemy import Column, String, Text, Numeric, Integer, Boolean, CheckConstraint, Index
from sqlalchemy.orm import relationship

from .base import Base, TimestampedModel, UUIDModel, SerializableMixin


class Product(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Product as seen by checkout, cancellation and review aggregation"""

    __tablename__ = "products"

    # Basic info
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Inventory
    stock = Column(Integer, default=0, nullable=False)
    sold_count = Column(Integer, default=0, nullable=False)

    # Review aggregates, recomputed from approved reviews
    rating = Column(Numeric(2, 1), default=0, nullable=False)
    review_count = Column(Integer, default=0, nullable=False)

    # Relationships
    reviews = relationship("Review", back_populates="product", cascade="all, delete-orphan")
    order_items = relationship("OrderItem", back_populates="product")

    # Constraints
    __table_args__ = (
        CheckConstraint("price >= 0", name="check_non_negative_price"),
        CheckConstraint("stock >= 0", name="check_non_negative_stock"),
        CheckConstraint("rating >= 0 AND rating <= 5", name="check_product_rating_range"),
        Index("idx_products_active", "is_active"),
    )
