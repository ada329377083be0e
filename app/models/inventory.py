"""
Inventory management utilities
"""

from typing import Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update
import logging

from app.models.product import Product
from app.core.exceptions import InsufficientStockException, ProductNotFoundException

logger = logging.getLogger(__name__)


class InventoryManager:
    """
    Stock and sold-count adjustments for products.

    None of these methods commit; they run inside the caller's transaction
    so stock moves together with the order write that caused it.
    """

    async def adjust_stock(self, db: AsyncSession, product_id, delta: int) -> None:
        """Add ``delta`` (may be negative) to a product's stock"""
        stmt = update(Product).where(Product.id == product_id)
        if delta < 0:
            stmt = stmt.where(Product.stock >= -delta)
        result = await db.execute(
            stmt.values(stock=Product.stock + delta).execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            product = await db.get(Product, product_id)
            if product is None:
                raise ProductNotFoundException(product_id)
            raise InsufficientStockException(product.name, product.stock)

    async def adjust_sold_count(self, db: AsyncSession, product_id, delta: int) -> None:
        """Add ``delta`` (may be negative) to a product's sold count"""
        result = await db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(sold_count=Product.sold_count + delta)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise ProductNotFoundException(product_id)

    async def reserve_stock(self, db: AsyncSession, items: Iterable) -> None:
        """
        Take stock for order items at checkout
        """
        for item in items:
            await self.adjust_stock(db, item.product_id, -item.quantity)
            await self.adjust_sold_count(db, item.product_id, item.quantity)

    async def restore_stock(self, db: AsyncSession, items: Iterable) -> None:
        """
        Return items of a cancelled order to inventory
        """
        for item in items:
            await self.adjust_stock(db, item.product_id, item.quantity)
            await self.adjust_sold_count(db, item.product_id, -item.quantity)
            logger.debug(
                "Restored %s units of product %s", item.quantity, item.product_id
            )


inventory_manager = InventoryManager()
