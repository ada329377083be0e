"""Tests for order checkout, status transitions, payment axis and stats."""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import update

from app.core.exceptions import (
    BadRequestException,
    InsufficientStockException,
    InvalidTransitionException,
    OrderNotFoundException,
    UnauthorizedException,
)
from app.models.inventory import InventoryManager
from app.models.order import Order, OrderStatus, PaymentStatus
from app.schemas.order import OrderResponse
from app.services.order_service import OrderService, OrderStateMachine


class FailingRestoreInventory(InventoryManager):
    """Gives back the first line's stock, then fails"""

    async def restore_stock(self, db, items):
        first, *_ = items
        await self.adjust_stock(db, first.product_id, first.quantity)
        await self.adjust_sold_count(db, first.product_id, -first.quantity)
        raise RuntimeError("inventory service unavailable")


class TestOrderStateMachine:
    def test_forward_moves_may_skip_steps(self):
        assert OrderStateMachine.can_transition(OrderStatus.PENDING, OrderStatus.PROCESSING)
        assert OrderStateMachine.can_transition(OrderStatus.PENDING, OrderStatus.DELIVERED)
        assert OrderStateMachine.can_transition(OrderStatus.PROCESSING, OrderStatus.SHIPPED)
        assert OrderStateMachine.can_transition(OrderStatus.SHIPPED, OrderStatus.DELIVERED)

    def test_no_backward_moves(self):
        assert not OrderStateMachine.can_transition(OrderStatus.SHIPPED, OrderStatus.PROCESSING)
        assert not OrderStateMachine.can_transition(OrderStatus.PROCESSING, OrderStatus.PENDING)

    def test_terminal_states(self):
        assert OrderStateMachine.is_terminal_state(OrderStatus.DELIVERED)
        assert OrderStateMachine.is_terminal_state(OrderStatus.CANCELLED)
        assert not OrderStateMachine.is_terminal_state(OrderStatus.SHIPPED)
        assert OrderStateMachine.get_valid_transitions(OrderStatus.DELIVERED) == []

    def test_cancellable_only_before_shipping(self):
        assert OrderStateMachine.is_cancellable(OrderStatus.PENDING)
        assert OrderStateMachine.is_cancellable(OrderStatus.PROCESSING)
        assert not OrderStateMachine.is_cancellable(OrderStatus.SHIPPED)


class TestCreateOrder:
    async def test_snapshots_prices_and_computes_totals(self, session, user_id, make_product, place_order):
        product = await make_product(price="10.00", stock=5)

        order = await place_order(user_id, (product, 2))

        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.order_number.startswith("ORD")
        assert order.subtotal == Decimal("20.00")
        assert order.tax == Decimal("1.40")
        assert order.total == Decimal("21.40")
        assert [item.product_name for item in order.items] == ["Ceramic mug"]
        assert [entry.status for entry in order.timeline] == [OrderStatus.PENDING]

        payload = order.to_dict(exclude=["shipping_address"])
        assert payload["status"] == "pending"
        assert payload["total"] == 21.4
        assert payload["user_id"] == str(user_id)

        await session.refresh(product)
        assert product.stock == 3
        assert product.sold_count == 2

    async def test_insufficient_stock_rejected(self, session, user_id, make_product, place_order):
        product = await make_product(stock=1)

        with pytest.raises(InsufficientStockException):
            await place_order(user_id, (product, 2))

        await session.refresh(product)
        assert product.stock == 1


class TestTransitionStatus:
    async def test_transition_appends_timeline_and_stamps_dates(self, session, user_id, make_product, place_order):
        product = await make_product()
        order = await place_order(user_id, (product, 1))
        service = OrderService(session)

        await service.transition_status(order.id, OrderStatus.PROCESSING)
        await service.transition_status(order.id, OrderStatus.SHIPPED, note="Handed to courier")
        order = await service.transition_status(order.id, OrderStatus.DELIVERED)

        assert order.status == OrderStatus.DELIVERED
        assert order.shipped_date is not None
        assert order.delivered_date is not None
        assert order.delivery_confirmed is False
        assert [entry.status for entry in order.timeline] == [
            OrderStatus.PENDING,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        ]
        assert order.timeline[2].note == "Handed to courier"

    async def test_tracking_number_recorded_when_shipped(self, session, user_id, make_product, place_order):
        product = await make_product()
        order = await place_order(user_id, (product, 1))
        service = OrderService(session)

        order = await service.transition_status(order.id, OrderStatus.SHIPPED, tracking_number="TRK123")
        assert order.tracking_number == "TRK123"

        order = await service.transition_status(order.id, OrderStatus.DELIVERED)
        assert order.tracking_number == "TRK123"

    @pytest.mark.parametrize("status", [OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    async def test_cannot_cancel_after_shipping(self, session, user_id, make_product, place_order, status):
        product = await make_product()
        order = await place_order(user_id, (product, 1))
        service = OrderService(session)
        order = await service.transition_status(order.id, status)
        timeline_length = len(order.timeline)

        with pytest.raises(InvalidTransitionException) as exc:
            await service.transition_status(order.id, OrderStatus.CANCELLED)

        assert exc.value.error_code == "INVALID_TRANSITION"
        assert f"Cannot cancel order in {status.value} status" in exc.value.detail
        order = await service.get_order(order.id)
        assert order.status == status
        assert order.cancelled_at is None
        assert len(order.timeline) == timeline_length

    async def test_cancelled_is_terminal(self, session, user_id, make_product, place_order):
        product = await make_product()
        order = await place_order(user_id, (product, 1))
        service = OrderService(session)
        await service.transition_status(order.id, OrderStatus.CANCELLED)

        for status in (OrderStatus.CANCELLED, OrderStatus.PROCESSING, OrderStatus.DELIVERED):
            with pytest.raises(InvalidTransitionException):
                await service.transition_status(order.id, status)

    async def test_unknown_status_rejected(self, session, user_id, make_product, place_order):
        product = await make_product()
        order = await place_order(user_id, (product, 1))

        with pytest.raises(InvalidTransitionException):
            await OrderService(session).transition_status(order.id, "returned")

    async def test_unknown_order(self, session):
        with pytest.raises(OrderNotFoundException):
            await OrderService(session).transition_status(uuid.uuid4(), OrderStatus.PROCESSING)

        with pytest.raises(OrderNotFoundException):
            await OrderService(session).transition_status("not-a-uuid", OrderStatus.PROCESSING)

    async def test_status_changed_by_another_request(self, session, user_id, make_product, place_order):
        product = await make_product()
        order = await place_order(user_id, (product, 1))
        order_id = order.id
        service = OrderService(session)
        load_order = service.get_order

        async def load_then_race(order_id):
            loaded = await load_order(order_id)
            await session.execute(
                update(Order)
                .where(Order.id == loaded.id)
                .values(status=OrderStatus.PROCESSING)
                .execution_options(synchronize_session=False)
            )
            return loaded

        service.get_order = load_then_race

        with pytest.raises(InvalidTransitionException) as exc:
            await service.transition_status(order_id, OrderStatus.SHIPPED)
        assert "another request" in exc.value.detail

        order = await OrderService(session).get_order(order_id)
        assert order.status == OrderStatus.PENDING
        assert len(order.timeline) == 1


class TestCancelOrder:
    async def test_cancel_processing_order_restores_stock(self, session, user_id, make_product, place_order):
        mug = await make_product(name="Ceramic mug", stock=10)
        kettle = await make_product(name="Kettle", price="35.00", stock=5)
        order = await place_order(user_id, (mug, 3), (kettle, 1))
        service = OrderService(session)
        await service.transition_status(order.id, OrderStatus.PROCESSING)

        order = await service.cancel_order(order.id, user_id, reason="Changed my mind")

        await session.refresh(mug)
        await session.refresh(kettle)
        assert (mug.stock, mug.sold_count) == (10, 0)
        assert (kettle.stock, kettle.sold_count) == (5, 0)
        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_at is not None
        assert order.timeline[-1].status == OrderStatus.CANCELLED
        assert order.timeline[-1].note == "Changed my mind"

    async def test_cancel_cannot_be_repeated(self, session, user_id, make_product, place_order):
        mug = await make_product(stock=10)
        order = await place_order(user_id, (mug, 2))
        service = OrderService(session)
        await service.cancel_order(order.id, user_id)

        with pytest.raises(InvalidTransitionException):
            await service.cancel_order(order.id, user_id)

        await session.refresh(mug)
        assert mug.stock == 10

    async def test_failed_stock_restore_leaves_order_untouched(self, session, user_id, make_product, place_order):
        mug = await make_product(name="Ceramic mug", stock=10)
        kettle = await make_product(name="Kettle", price="35.00", stock=5)
        order = await place_order(user_id, (mug, 3), (kettle, 1))
        order_id = order.id
        service = OrderService(session, inventory=FailingRestoreInventory())

        with pytest.raises(RuntimeError):
            await service.cancel_order(order_id, user_id)

        await session.refresh(mug)
        await session.refresh(kettle)
        assert (mug.stock, mug.sold_count) == (7, 3)
        assert (kettle.stock, kettle.sold_count) == (4, 1)
        order = await OrderService(session).get_order(order_id)
        assert order.status == OrderStatus.PENDING
        assert order.cancelled_at is None
        assert len(order.timeline) == 1

    async def test_only_owner_can_cancel(self, session, user_id, make_product, place_order):
        product = await make_product()
        order = await place_order(user_id, (product, 1))

        with pytest.raises(UnauthorizedException):
            await OrderService(session).cancel_order(order.id, uuid.uuid4())

        order = await OrderService(session).get_order(order.id)
        assert order.status == OrderStatus.PENDING


class TestPaymentAndQueries:
    async def test_payment_status_is_independent_of_order_status(self, session, user_id, make_product, place_order):
        product = await make_product()
        order = await place_order(user_id, (product, 1))
        service = OrderService(session)

        order = await service.update_payment_status(order.id, "completed")

        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.status == OrderStatus.PENDING

    async def test_invalid_payment_status(self, session, user_id, make_product, place_order):
        product = await make_product()
        order = await place_order(user_id, (product, 1))

        with pytest.raises(BadRequestException) as exc:
            await OrderService(session).update_payment_status(order.id, "refunded")
        assert exc.value.error_code == "INVALID_PAYMENT_STATUS"

    async def test_list_user_orders(self, session, user_id, make_product, place_order):
        product = await make_product(stock=20)
        first = await place_order(user_id, (product, 1))
        await place_order(user_id, (product, 1))
        await place_order(uuid.uuid4(), (product, 1))
        service = OrderService(session)
        await service.transition_status(first.id, OrderStatus.PROCESSING)

        page = await service.list_user_orders(user_id)
        assert page["total"] == 2
        assert {o.user_id for o in page["items"]} == {user_id}

        assert all(isinstance(o, OrderResponse) for o in page["items"])

        processing = await service.list_user_orders(user_id, status=OrderStatus.PROCESSING)
        assert [o.id for o in processing["items"]] == [first.id]
        listed = processing["items"][0]
        assert [entry.status for entry in listed.timeline] == [OrderStatus.PENDING, OrderStatus.PROCESSING]
        assert [(item.product_id, item.quantity) for item in listed.items] == [(product.id, 1)]
        assert listed.model_dump()["status"] == OrderStatus.PROCESSING

    async def test_stats(self, session, user_id, make_product, place_order):
        product = await make_product(price="10.00", stock=20)
        delivered = await place_order(user_id, (product, 1))
        cancelled = await place_order(user_id, (product, 1))
        await place_order(user_id, (product, 1))
        service = OrderService(session)
        await service.transition_status(delivered.id, OrderStatus.DELIVERED)
        await service.transition_status(cancelled.id, OrderStatus.CANCELLED)

        stats = await service.get_order_stats()

        assert stats.total_orders == 3
        assert stats.pending_orders == 1
        assert stats.delivered_orders == 1
        assert stats.cancelled_orders == 1
        assert stats.pending_payments == 3
        assert stats.total_revenue == Decimal("10.70")
