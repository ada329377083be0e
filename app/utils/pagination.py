"""
Pagination utilities
"""

from typing import Any, Dict
from pydantic import BaseModel, Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from app.core.config import settings


class PaginationParams(BaseModel):
    """Pagination parameters"""
    page: int = Field(1, ge=1, description="Page number")
    size: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Page size")

    @property
    def offset(self) -> int:
        """Calculate offset"""
        return (self.page - 1) * self.size


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int = 1,
    size: int = settings.DEFAULT_PAGE_SIZE
) -> Dict[str, Any]:
    """
    Paginate query results

    Args:
        db: Database session
        query: SQLAlchemy query
        page: Page number
        size: Page size

    Returns:
        Dictionary with items, total, page, size and pages
    """
    params = PaginationParams(page=page, size=size)

    # Get total count
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = await db.scalar(count_query) or 0

    # Calculate pages
    pages = (total + params.size - 1) // params.size

    # Execute query
    result = await db.execute(query.offset(params.offset).limit(params.size))
    items = result.scalars().all()

    return {
        "items": items,
        "total": total,
        "page": params.page,
        "size": params.size,
        "pages": pages
    }
