"""Order model with state machine fields and timeline"""

from sqlalchemy import (
    Column, String, Numeric, Integer, Enum, ForeignKey, Index, Text, DateTime,
    Boolean, JSON, Uuid, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel, SerializableMixin


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, enum.Enum):
    CREDIT_CARD = "credit-card"
    BANK_TRANSFER = "bank-transfer"
    CASH_ON_DELIVERY = "cash-on-delivery"


class Order(Base, TimestampedModel, UUIDModel, SerializableMixin):
    """Customer order, owned by exactly one user"""

    __tablename__ = "orders"

    # Order identification
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)

    # Status
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)

    # Amounts
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    coupon_code = Column(String(50), nullable=True)

    # Delivery
    shipping_address = Column(JSON, nullable=True)
    tracking_number = Column(String(100), nullable=True)
    shipped_date = Column(DateTime(timezone=True), nullable=True)
    delivered_date = Column(DateTime(timezone=True), nullable=True)
    delivery_confirmed = Column(Boolean, default=False, nullable=False)
    delivery_confirmed_date = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Additional info
    notes = Column(Text, nullable=True)

    # Relationships
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
        lazy="selectin",
    )
    timeline = relationship(
        "OrderTimelineEntry",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderTimelineEntry.sequence",
        lazy="selectin",
    )
    reviews = relationship("Review", back_populates="order")

    # Indexes
    __table_args__ = (
        Index("idx_orders_user_status", "user_id", "status"),
        Index("idx_orders_payment_status", "payment_status"),
    )

    def has_product(self, product_id) -> bool:
        return any(str(item.product_id) == str(product_id) for item in self.items)


class OrderItem(Base, UUIDModel, SerializableMixin):
    """Individual items within an order"""

    __tablename__ = "order_items"

    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id"), nullable=False)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    # Item details (snapshot at time of order)
    product_name = Column(String(255), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)

    # Quantities and pricing
    quantity = Column(Integer, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)

    # Relationships
    order = relationship("Order", back_populates="items")
    product = relationship("Product", back_populates="order_items")

    # Constraints
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="check_positive_quantity"),
        Index("idx_order_items_order_product", "order_id", "product_id"),
    )


class OrderTimelineEntry(Base, UUIDModel, SerializableMixin):
    """Append-only record of an order's status transitions"""

    __tablename__ = "order_timeline"

    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id"), nullable=False)
    sequence = Column(Integer, nullable=False)
    status = Column(Enum(OrderStatus), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    note = Column(Text, nullable=True)
    changed_by = Column(Uuid(as_uuid=True), nullable=True)

    # Relationships
    order = relationship("Order", back_populates="timeline")

    # Constraints
    __table_args__ = (
        UniqueConstraint("order_id", "sequence", name="uq_order_timeline_sequence"),
        Index("idx_order_timeline_order", "order_id"),
    )
