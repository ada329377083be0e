"""
Review eligibility

A user may review a product once per delivered and confirmed order that
contains it. The resolver picks the order a new review should be attached
to, oldest delivery first.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging

from app.core.exceptions import (
    ConfirmationPendingException,
    NotDeliveredException,
    ProductNotInOrderException,
)
from app.models.order import Order, OrderItem, OrderStatus
from app.models.review import Review
from app.schemas.order import ConfirmationState
from app.schemas.review import EligibilityReason, EligibilityResult
from app.services.delivery_confirmation import DeliveryConfirmationGate
from app.services.order_service import OrderService
from app.utils.helpers import parse_uuid

logger = logging.getLogger(__name__)


class ReviewEligibilityResolver:
    """Answers "can this user review this product, and from which order?" """

    def __init__(self, db: AsyncSession, gate: Optional[DeliveryConfirmationGate] = None):
        self.db = db
        self.gate = gate or DeliveryConfirmationGate(db)

    async def delivered_orders_with_product(self, user_id, product_id) -> List[Order]:
        """Delivered orders of the user containing the product, oldest delivery first"""
        uid = parse_uuid(user_id)
        pid = parse_uuid(product_id)
        if uid is None or pid is None:
            return []

        result = await self.db.execute(
            select(Order)
            .where(
                Order.user_id == uid,
                Order.status == OrderStatus.DELIVERED,
                Order.items.any(OrderItem.product_id == pid),
            )
            .order_by(
                Order.delivered_date.asc().nulls_first(),
                Order.created_at.asc(),
                Order.id.asc(),
            )
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find_review(self, product_id, user_id, order_id) -> Optional[Review]:
        result = await self.db.execute(
            select(Review).where(
                Review.product_id == parse_uuid(product_id),
                Review.user_id == parse_uuid(user_id),
                Review.order_id == parse_uuid(order_id),
            )
        )
        return result.scalar_one_or_none()

    async def resolve_eligibility(self, user_id, product_id, now: Optional[datetime] = None) -> EligibilityResult:
        orders = await self.delivered_orders_with_product(user_id, product_id)
        if not orders:
            return EligibilityResult.denied(EligibilityReason.NO_DELIVERED_ORDER)

        awaiting_until: List[datetime] = []
        has_reviewed_orders = False

        for order in orders:
            confirmation = await self.gate.evaluate_confirmation(order, now=now)
            if confirmation.state == ConfirmationState.AWAITING_CONFIRMATION:
                awaiting_until.append(confirmation.auto_confirm_at)
                continue

            existing = await self.find_review(product_id, user_id, order.id)
            if existing is None:
                logger.debug("User %s can review product %s from order %s", user_id, product_id, order.id)
                return EligibilityResult.allowed(order.id)
            has_reviewed_orders = True

        if awaiting_until and not has_reviewed_orders:
            return EligibilityResult.denied(
                EligibilityReason.WAITING_FOR_DELIVERY_CONFIRMATION,
                can_review_at=min(awaiting_until),
            )

        return EligibilityResult.denied(EligibilityReason.ALREADY_REVIEWED_ALL_ORDERS)

    async def check_order_for_review(
        self,
        user_id,
        product_id,
        order_id,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Re-validate one specific order right before a review is written

        Returns the order when it is owned by the user, contains the
        product, is delivered and its delivery is confirmed.
        """
        order = await OrderService(self.db).get_user_order(order_id, user_id)

        if not order.has_product(product_id):
            raise ProductNotInOrderException()

        if order.status != OrderStatus.DELIVERED:
            raise NotDeliveredException(order.status)

        confirmation = await self.gate.evaluate_confirmation(order, now=now)
        if confirmation.state != ConfirmationState.CONFIRMED:
            raise ConfirmationPendingException(confirmation.auto_confirm_at)

        return order
