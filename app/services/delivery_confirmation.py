"""
Delivery confirmation gate

A delivered order is either awaiting the buyer's confirmation of receipt or
confirmed. Confirmation happens when the buyer says so, or lazily: the first
time the order is inspected after the grace period has passed. There is no
background sweep, so an order past its grace period stays unconfirmed in
storage until something evaluates it.
"""

from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update
import logging

from app.core.config import settings
from app.core.exceptions import NotDeliveredException
from app.models.order import Order, OrderStatus
from app.schemas.order import ConfirmationResult, ConfirmationState
from app.services.order_service import OrderService
from app.utils.helpers import utcnow, ensure_aware

logger = logging.getLogger(__name__)


class DeliveryConfirmationGate:
    """Owns ``delivery_confirmed`` and ``delivery_confirmed_date`` on orders"""

    def __init__(self, db: AsyncSession, grace_period: Optional[timedelta] = None):
        self.db = db
        self.grace_period = grace_period if grace_period is not None else settings.delivery_confirmation_grace_period

    def state_of(self, order: Order) -> ConfirmationState:
        """Confirmation state as stored, without applying the grace period"""
        if order.status != OrderStatus.DELIVERED:
            return ConfirmationState.NOT_DELIVERED
        if order.delivery_confirmed:
            return ConfirmationState.CONFIRMED
        return ConfirmationState.AWAITING_CONFIRMATION

    def auto_confirm_at(self, order: Order) -> Optional[datetime]:
        delivered = ensure_aware(order.delivered_date)
        if delivered is None:
            return None
        return delivered + self.grace_period

    async def evaluate_confirmation(self, order: Order, now: Optional[datetime] = None) -> ConfirmationResult:
        """
        Decide whether a delivered order counts as confirmed

        Persists the auto-confirmation the first time the grace period is
        seen to have elapsed. A delivered order with no delivered date is
        treated as past its grace period.
        """
        now = ensure_aware(now) or utcnow()
        state = self.state_of(order)

        if state == ConfirmationState.NOT_DELIVERED:
            return ConfirmationResult(order_id=order.id, state=state)

        if state == ConfirmationState.CONFIRMED:
            return ConfirmationResult(
                order_id=order.id,
                state=state,
                confirmed_at=ensure_aware(order.delivery_confirmed_date),
            )

        auto_confirm_at = self.auto_confirm_at(order)
        if auto_confirm_at is not None and now < auto_confirm_at:
            return ConfirmationResult(
                order_id=order.id,
                state=ConfirmationState.AWAITING_CONFIRMATION,
                auto_confirm_at=auto_confirm_at,
            )

        confirmed_at = await self._mark_confirmed(order, now)
        logger.info("Auto-confirmed delivery for order %s", order.id)
        return ConfirmationResult(
            order_id=order.id,
            state=ConfirmationState.CONFIRMED,
            confirmed_at=confirmed_at,
        )

    async def confirm_delivery(self, order_id, user_id, now: Optional[datetime] = None) -> ConfirmationResult:
        """Buyer confirms receipt of a delivered order"""
        order = await OrderService(self.db).get_user_order(order_id, user_id)

        state = self.state_of(order)
        if state == ConfirmationState.NOT_DELIVERED:
            raise NotDeliveredException(order.status)

        if state == ConfirmationState.CONFIRMED:
            return ConfirmationResult(
                order_id=order.id,
                state=state,
                confirmed_at=ensure_aware(order.delivery_confirmed_date),
            )

        confirmed_at = await self._mark_confirmed(order, ensure_aware(now) or utcnow())
        logger.info("Delivery confirmed by user %s for order %s", user_id, order.id)
        return ConfirmationResult(
            order_id=order.id,
            state=ConfirmationState.CONFIRMED,
            confirmed_at=confirmed_at,
        )

    async def _mark_confirmed(self, order: Order, now: datetime) -> datetime:
        """
        Set the confirmation flag and date at most once

        The update only matches while the flag is still false, so a second
        writer changes nothing and the first writer's date is kept.
        """
        try:
            await self.db.execute(
                update(Order)
                .where(
                    Order.id == order.id,
                    Order.status == OrderStatus.DELIVERED,
                    Order.delivery_confirmed.is_(False),
                )
                .values(delivery_confirmed=True, delivery_confirmed_date=now)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(order)
        return ensure_aware(order.delivery_confirmed_date)
