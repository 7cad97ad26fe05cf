"""
Database Connection Module

Two async SQLAlchemy engines:
    - engine: primary database (branches, menu, orders, profiles)
    - cart_engine: local cart store, a SQLite file by default
"""

import logging
from pathlib import Path
from typing import AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, StaticPool

from pizzeria.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine with pooling suited to the backend.

    SQLite in memory shares one connection (StaticPool), SQLite files open a
    connection per checkout (NullPool), anything else gets a sized pool.
    """
    parsed = make_url(url)

    if parsed.get_backend_name() == "sqlite":
        database = parsed.database or ""
        if database in ("", ":memory:"):
            return create_async_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_async_engine(url, echo=echo, poolclass=NullPool)

    return create_async_engine(
        url,
        echo=echo,
        pool_size=5,  # Connection pool size
        max_overflow=10,  # Extra connections when pool is full
    )


def make_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,  # Objects remain accessible after commit
    )


engine = make_engine(settings.database_url, echo=settings.database_echo)
async_session_maker = make_session_maker(engine)

cart_engine = make_engine(settings.cart_database_url, echo=settings.database_echo)
cart_session_maker = make_session_maker(cart_engine)


# Base class for primary database models
class Base(DeclarativeBase):
    pass


# Base class for local cart store models
class CartBase(DeclarativeBase):
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """
    Create all tables in both databases.
    Called once at application startup.
    """
    # Models must be imported so their tables are registered on the bases
    import pizzeria.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with cart_engine.begin() as conn:
        await conn.run_sync(CartBase.metadata.create_all)
    logger.info("Database tables created")


async def dispose_engines() -> None:
    await engine.dispose()
    await cart_engine.dispose()
