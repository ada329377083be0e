"""
Coupon service for validating and redeeming discount coupons
"""

from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, or_
import logging

from app.core.exceptions import CouponNotFoundException, InvalidCouponException, MissingFieldException
from app.models.coupon import Coupon, CouponUsage
from app.schemas.coupon import CouponResponse, CouponValidation
from app.utils.helpers import utcnow, ensure_aware, parse_uuid

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return code.strip().upper()


class CouponService:
    """
    Service for managing coupon operations
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_coupon_by_code(self, code: str) -> Coupon:
        if not code or not code.strip():
            raise MissingFieldException("code")

        result = await self.db.execute(select(Coupon).where(Coupon.code == normalize_code(code)))
        coupon = result.scalar_one_or_none()
        if coupon is None:
            raise CouponNotFoundException(code)
        return coupon

    @staticmethod
    def check_validity(coupon: Coupon, now: Optional[datetime] = None) -> None:
        """Raise InvalidCouponException unless the coupon is usable right now"""
        now = ensure_aware(now) or utcnow()

        if not coupon.is_active:
            raise InvalidCouponException("Coupon is not active")
        if now > ensure_aware(coupon.valid_until):
            raise InvalidCouponException("Coupon has expired")
        if now < ensure_aware(coupon.valid_from):
            raise InvalidCouponException("Coupon is not yet valid")
        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            raise InvalidCouponException("Coupon has reached maximum usage limit")

    async def count_user_usages(self, coupon: Coupon, user_id) -> int:
        return await self.db.scalar(
            select(func.count(CouponUsage.id)).where(
                CouponUsage.coupon_id == coupon.id,
                CouponUsage.user_id == parse_uuid(user_id),
            )
        ) or 0

    async def validate_coupon(
        self,
        code: str,
        user_id,
        cart_total: Decimal,
        now: Optional[datetime] = None,
    ) -> CouponValidation:
        """
        Validate coupon and calculate discount

        Checks run in order: the code exists, the coupon is active and inside
        its validity window with uses left, the user has uses left, and the
        cart reaches the minimum purchase amount.
        """
        coupon = await self.get_coupon_by_code(code)
        self.check_validity(coupon, now)

        if await self.count_user_usages(coupon, user_id) >= coupon.usage_limit_per_user:
            raise InvalidCouponException("You have reached maximum usage for this coupon")

        cart_total = Decimal(cart_total)
        if cart_total < Decimal(coupon.min_order_value or 0):
            raise InvalidCouponException(
                f"Minimum purchase amount of {coupon.min_order_value} required"
            )

        discount = coupon.calculate_discount(cart_total)
        return CouponValidation(
            coupon_id=coupon.id,
            code=coupon.code,
            discount_type=coupon.discount_type,
            discount_value=coupon.discount_value,
            discount_amount=discount,
            final_total=max(Decimal("0"), cart_total - discount),
        )

    async def apply_usage(self, coupon_id, user_id, order_id, discount_amount: Decimal) -> None:
        """
        Record one use of a coupon

        Does not commit; runs inside the checkout transaction. The counter
        only moves while uses are left, so two checkouts racing for the
        last use cannot both succeed.
        """
        result = await self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon_id,
                or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
            )
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidCouponException("Coupon has reached maximum usage limit")

        self.db.add(
            CouponUsage(
                coupon_id=coupon_id,
                user_id=parse_uuid(user_id),
                order_id=order_id,
                discount_amount=discount_amount,
            )
        )
        logger.debug("Coupon %s used on order %s", coupon_id, order_id)

    async def list_active_coupons(self, now: Optional[datetime] = None) -> List[CouponResponse]:
        """Coupons currently inside their validity window, biggest discount first"""
        now = ensure_aware(now) or utcnow()
        result = await self.db.execute(
            select(Coupon)
            .where(
                Coupon.is_active.is_(True),
                Coupon.valid_from <= now,
                Coupon.valid_until >= now,
            )
            .order_by(Coupon.discount_value.desc(), Coupon.code)
        )
        return [CouponResponse.model_validate(coupon) for coupon in result.scalars().all()]
