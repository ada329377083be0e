"""Shared fixtures: an in-memory database and order/product factories."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import create_session_factory, drop_db, init_db
from app.models.coupon import Coupon, DiscountType
from app.models.order import OrderStatus, PaymentMethod
from app.models.product import Product
from app.schemas.order import OrderCreate, OrderItemCreate
from app.services.order_service import OrderService

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(bind=engine)
    yield engine
    await drop_db(bind=engine)
    await engine.dispose()


@pytest.fixture
async def session(engine):
    factory = create_session_factory(engine)
    async with factory() as session:
        yield session


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def make_product(session):
    async def _make(name="Ceramic mug", price="10.00", stock=10):
        product = Product(name=name, price=Decimal(price), stock=stock)
        session.add(product)
        await session.commit()
        await session.refresh(product)
        return product

    return _make


@pytest.fixture
def place_order(session):
    """Check out ``(product, quantity)`` lines for a user through OrderService."""

    async def _place(user_id, *lines, payment_method=PaymentMethod.CASH_ON_DELIVERY, coupon_code=None):
        data = OrderCreate(
            items=[OrderItemCreate(product_id=product.id, quantity=qty) for product, qty in lines],
            payment_method=payment_method,
            shipping_address={"city": "Springfield", "line1": "742 Evergreen Terrace"},
            coupon_code=coupon_code,
        )
        return await OrderService(session).create_order(user_id, data)

    return _place


@pytest.fixture
def deliver(session):
    """Move an order to delivered and pin its delivery time."""

    async def _deliver(order, delivered_at=T0):
        order = await OrderService(session).transition_status(order.id, OrderStatus.DELIVERED)
        order.delivered_date = delivered_at
        await session.commit()
        await session.refresh(order)
        return order

    return _deliver


@pytest.fixture
def make_coupon(session):
    """Create a coupon that is valid from yesterday until tomorrow by default."""

    async def _make(code="SAVE10", discount_type=DiscountType.PERCENTAGE, value="10", **fields):
        now = datetime.now(timezone.utc)
        fields.setdefault("valid_from", now - timedelta(days=1))
        fields.setdefault("valid_until", now + timedelta(days=1))
        fields.setdefault("usage_limit_per_user", 1)
        coupon = Coupon(code=code, discount_type=discount_type, discount_value=Decimal(value), **fields)
        session.add(coupon)
        await session.commit()
        await session.refresh(coupon)
        return coupon

    return _make
