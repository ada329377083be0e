"""Tests for session helpers in app.core.database."""

import logging
from decimal import Decimal

import pytest
from sqlalchemy import func, select, text

from app.core.database import close_db, create_engine_for, create_session_factory, get_db_context
from app.models.product import Product


async def _product_names(factory):
    async with factory() as session:
        return (await session.execute(select(Product.name).order_by(Product.name))).scalars().all()


class TestGetDbContext:
    async def test_commits_on_clean_exit(self, engine):
        factory = create_session_factory(engine)

        async with get_db_context(factory) as session:
            session.add(Product(name="Teapot", price=Decimal("18.00"), stock=4))

        assert await _product_names(factory) == ["Teapot"]

    async def test_rolls_back_and_reraises(self, engine):
        factory = create_session_factory(engine)

        with pytest.raises(ValueError):
            async with get_db_context(factory) as session:
                session.add(Product(name="Teapot", price=Decimal("18.00"), stock=4))
                await session.flush()
                raise ValueError("import aborted")

        async with factory() as session:
            assert await session.scalar(select(func.count(Product.id))) == 0


class TestCloseDb:
    async def test_disposes_given_engine(self, caplog):
        engine = create_engine_for("sqlite+aiosqlite://")
        async with engine.connect() as conn:
            assert await conn.scalar(text("SELECT 1")) == 1

        with caplog.at_level(logging.INFO, logger="app.core.database"):
            await close_db(bind=engine)

        assert "Database connections closed" in caplog.text
        assert engine.pool.checkedout() == 0
