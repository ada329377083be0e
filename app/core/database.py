"""
Database configuration and session management
Uses SQLAlchemy with async support
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import logging

from .config import settings
from app.models.base import Base

logger = logging.getLogger(__name__)


def create_engine_for(url: str, **kwargs) -> AsyncEngine:
    """Build an async engine, skipping pool parameters SQLite doesn't support"""
    if url.startswith("sqlite"):
        kwargs.setdefault("poolclass", NullPool)
        return create_async_engine(url, echo=settings.DATABASE_ECHO, **kwargs)

    return create_async_engine(
        url,
        echo=settings.DATABASE_ECHO,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_pre_ping=True,  # Verify connections before use
        **kwargs,
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine_for(settings.database_url_async)
AsyncSessionLocal = create_session_factory(engine)


@asynccontextmanager
async def get_db_context(
    session_factory: Optional[async_sessionmaker] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions
    Commits on a clean exit, rolls back and re-raises otherwise.
    Useful for scripts and admin tools
    """
    async with (session_factory or AsyncSessionLocal)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Initialize database tables"""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")


async def drop_db(bind: Optional[AsyncEngine] = None) -> None:
    """Drop all tables"""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def close_db(bind: Optional[AsyncEngine] = None) -> None:
    """Close database connections"""
    await (bind or engine).dispose()
    logger.info("Database connections closed")
