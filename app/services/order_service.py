"""Order service with state machine"""

from typing import List, Dict, Any, Optional, Set
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from decimal import Decimal, ROUND_HALF_UP
import logging
import uuid

from app.core.config import settings
from app.core.exceptions import (
    BadRequestException,
    InvalidTransitionException,
    InsufficientStockException,
    OrderNotFoundException,
    ProductNotFoundException,
    UnauthorizedException,
)
from app.models.order import Order, OrderItem, OrderStatus, PaymentStatus, OrderTimelineEntry
from app.models.product import Product
from app.models.inventory import InventoryManager, inventory_manager
from app.schemas.order import OrderCreate, OrderResponse, OrderStatsResponse
from app.services.coupon_service import CouponService
from app.utils.helpers import utcnow, generate_order_number, parse_uuid
from app.utils.pagination import paginate

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class OrderStateMachine:
    """Order state machine for status transitions"""

    # Forward moves may skip steps; delivered and cancelled are terminal
    TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
        OrderStatus.PENDING: {
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        },
        OrderStatus.PROCESSING: {
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        },
        OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
        OrderStatus.DELIVERED: set(),
        OrderStatus.CANCELLED: set(),
    }

    CANCELLABLE = {OrderStatus.PENDING, OrderStatus.PROCESSING}

    @classmethod
    def can_transition(cls, from_status: OrderStatus, to_status: OrderStatus) -> bool:
        """Check if transition is valid"""
        return to_status in cls.TRANSITIONS.get(from_status, set())

    @classmethod
    def get_valid_transitions(cls, current_status: OrderStatus) -> List[OrderStatus]:
        """Get available transitions from current status"""
        return sorted(cls.TRANSITIONS.get(current_status, set()), key=lambda s: s.value)

    @classmethod
    def is_terminal_state(cls, status: OrderStatus) -> bool:
        return not cls.TRANSITIONS.get(status)

    @classmethod
    def is_cancellable(cls, status: OrderStatus) -> bool:
        return status in cls.CANCELLABLE


class OrderService:
    """Order lifecycle: checkout, status transitions, payment axis and stats"""

    def __init__(
        self,
        db: AsyncSession,
        inventory: Optional[InventoryManager] = None,
        coupons: Optional[CouponService] = None,
    ):
        self.db = db
        self.inventory = inventory or inventory_manager
        self.coupons = coupons or CouponService(db)
        self.state_machine = OrderStateMachine()

    async def get_order(self, order_id) -> Order:
        """Load an order with its items and timeline"""
        oid = parse_uuid(order_id)
        if oid is None:
            raise OrderNotFoundException(order_id)

        result = await self.db.execute(
            select(Order).where(Order.id == oid).execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    async def get_user_order(self, order_id, user_id) -> Order:
        """Load an order and make sure ``user_id`` owns it"""
        order = await self.get_order(order_id)
        if str(order.user_id) != str(user_id):
            raise UnauthorizedException("Unauthorized to access this order")
        return order

    async def create_order(self, user_id: uuid.UUID, data: OrderCreate) -> Order:
        """
        Create a pending order, snapshotting product name and price and
        taking stock for every line item. A coupon code is validated
        against the subtotal and its discount computed here.
        """
        now = utcnow()
        order_items: List[OrderItem] = []
        subtotal = Decimal("0")

        for position, item in enumerate(data.items):
            product = await self.db.get(Product, item.product_id)
            if product is None or not product.is_active:
                raise ProductNotFoundException(item.product_id)
            if product.stock < item.quantity:
                raise InsufficientStockException(product.name, product.stock)

            unit_price = Decimal(product.price)
            line_total = (unit_price * item.quantity).quantize(CENTS)
            subtotal += line_total
            order_items.append(
                OrderItem(
                    product_id=product.id,
                    position=position,
                    product_name=product.name,
                    unit_price=unit_price,
                    quantity=item.quantity,
                    total_price=line_total,
                )
            )

        coupon = None
        discount = Decimal("0")
        if data.coupon_code:
            coupon = await self.coupons.validate_coupon(data.coupon_code, user_id, subtotal, now=now)
            discount = coupon.discount_amount

        tax = ((subtotal - discount) * Decimal(str(settings.TAX_RATE))).quantize(CENTS, ROUND_HALF_UP)
        total = subtotal - discount + tax

        order = Order(
            order_number=generate_order_number(),
            user_id=parse_uuid(user_id),
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            payment_method=data.payment_method,
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=total,
            coupon_code=coupon.code if coupon else None,
            shipping_address=data.shipping_address,
            notes=data.notes,
            delivery_confirmed=False,
        )
        order.items = order_items
        order.timeline = [
            OrderTimelineEntry(
                sequence=0,
                status=OrderStatus.PENDING,
                timestamp=now,
                note="Order placed",
                changed_by=parse_uuid(user_id),
            )
        ]

        try:
            self.db.add(order)
            await self.db.flush()
            await self.inventory.reserve_stock(self.db, order_items)
            if coupon is not None:
                await self.coupons.apply_usage(coupon.coupon_id, user_id, order.id, discount)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(order)
        logger.info("Order %s created for user %s", order.order_number, user_id)
        return order

    async def transition_status(
        self,
        order_id,
        new_status,
        note: Optional[str] = None,
        changed_by: Optional[uuid.UUID] = None,
        tracking_number: Optional[str] = None,
    ) -> Order:
        """
        Move an order to ``new_status``, optionally recording the carrier
        tracking number

        The status write is a compare-and-set on the status that was read;
        when another request got there first no row matches and the caller
        gets InvalidTransitionException. Status, timeline entry and any
        stock restoration commit together or not at all.
        """
        try:
            target = OrderStatus(new_status)
        except ValueError:
            raise InvalidTransitionException("unknown", new_status, detail=f"Invalid status '{new_status}'")

        order = await self.get_order(order_id)
        current = order.status

        if not self.state_machine.can_transition(current, target):
            if target == OrderStatus.CANCELLED:
                raise InvalidTransitionException(
                    current, target, detail=f"Cannot cancel order in {current.value} status"
                )
            raise InvalidTransitionException(current, target)

        now = utcnow()
        values: Dict[str, Any] = {"status": target}
        if target == OrderStatus.SHIPPED and order.shipped_date is None:
            values["shipped_date"] = now
        elif target == OrderStatus.DELIVERED and order.delivered_date is None:
            values["delivered_date"] = now
        elif target == OrderStatus.CANCELLED:
            values["cancelled_at"] = now
        if tracking_number:
            values["tracking_number"] = tracking_number

        try:
            result = await self.db.execute(
                update(Order)
                .where(Order.id == order.id, Order.status == current)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidTransitionException(
                    current,
                    target,
                    detail="Order status was changed by another request",
                )

            order.timeline.append(
                OrderTimelineEntry(
                    sequence=len(order.timeline),
                    status=target,
                    timestamp=now,
                    note=note,
                    changed_by=parse_uuid(changed_by),
                )
            )

            # Cancellation gives the stock back
            if target == OrderStatus.CANCELLED:
                await self.inventory.restore_stock(self.db, order.items)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(order)
        logger.info(
            "Order %s status changed from %s to %s", order.id, current.value, target.value
        )
        return order

    async def cancel_order(self, order_id, user_id, reason: Optional[str] = None) -> Order:
        """Customer cancellation; only the owner may cancel"""
        await self.get_user_order(order_id, user_id)
        return await self.transition_status(
            order_id,
            OrderStatus.CANCELLED,
            note=reason or "Cancelled by customer",
            changed_by=user_id,
        )

    async def update_payment_status(self, order_id, payment_status) -> Order:
        """Record a payment callback; independent of the order status"""
        try:
            new_payment_status = PaymentStatus(payment_status)
        except ValueError:
            raise BadRequestException(
                f"Invalid payment status '{payment_status}'", error_code="INVALID_PAYMENT_STATUS"
            )
        order = await self.get_order(order_id)

        try:
            order.payment_status = new_payment_status
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(order)
        logger.info("Order %s payment status set to %s", order.id, new_payment_status.value)
        return order

    async def list_user_orders(
        self,
        user_id,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        size: int = settings.DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """Paginated orders of one user, newest first, as response payloads"""
        query = select(Order).where(Order.user_id == parse_uuid(user_id))
        if status is not None:
            query = query.where(Order.status == OrderStatus(status))
        query = query.order_by(Order.created_at.desc(), Order.id)
        page_data = await paginate(self.db, query, page=page, size=size)
        page_data["items"] = [OrderResponse.model_validate(order) for order in page_data["items"]]
        return page_data

    async def get_order_stats(self) -> OrderStatsResponse:
        """Admin dashboard counts and revenue over delivered orders"""
        status_rows = await self.db.execute(
            select(Order.status, func.count(Order.id)).group_by(Order.status)
        )
        by_status = {status: count for status, count in status_rows.all()}

        payment_rows = await self.db.execute(
            select(Order.payment_status, func.count(Order.id)).group_by(Order.payment_status)
        )
        by_payment = {status: count for status, count in payment_rows.all()}

        revenue = await self.db.scalar(
            select(func.coalesce(func.sum(Order.total), 0)).where(
                Order.status == OrderStatus.DELIVERED
            )
        )

        return OrderStatsResponse(
            total_orders=sum(by_status.values()),
            pending_orders=by_status.get(OrderStatus.PENDING, 0),
            processing_orders=by_status.get(OrderStatus.PROCESSING, 0),
            shipped_orders=by_status.get(OrderStatus.SHIPPED, 0),
            delivered_orders=by_status.get(OrderStatus.DELIVERED, 0),
            cancelled_orders=by_status.get(OrderStatus.CANCELLED, 0),
            pending_payments=by_payment.get(PaymentStatus.PENDING, 0),
            completed_payments=by_payment.get(PaymentStatus.COMPLETED, 0),
            failed_payments=by_payment.get(PaymentStatus.FAILED, 0),
            total_revenue=Decimal(str(revenue or 0)).quantize(CENTS),
        )
