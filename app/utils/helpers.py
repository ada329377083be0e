"""
Helper utilities
"""

import random
import string
import uuid
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes

    SQLite hands back naive values even for timezone-aware columns;
    everything stored by this package is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_order_number(prefix: str = "ORD") -> str:
    """Generate unique order number"""
    timestamp = utcnow().strftime('%Y%m%d%H%M%S')
    random_suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))

    return f"{prefix}{timestamp}{random_suffix}"


def parse_uuid(value) -> Optional[uuid.UUID]:
    """Coerce ids coming from the boundary; None when malformed"""
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None
