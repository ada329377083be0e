"""Utilities package"""

from .helpers import utcnow, ensure_aware, generate_order_number, parse_uuid
from .pagination import paginate, PaginationParams

__all__ = [
    "utcnow",
    "ensure_aware",
    "generate_order_number",
    "parse_uuid",
    "paginate",
    "PaginationParams",
]
