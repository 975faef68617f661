"""Async SQLAlchemy session factory."""
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import Settings, get_settings


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine. Pool sizing only applies to pooled server drivers."""
    kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if not settings.database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow
    return create_async_engine(settings.database_url, **kwargs)


engine = build_engine(get_settings())

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def get_session_factory() -> async_sessionmaker:
    """Return the session factory for code that runs outside a request."""
    return async_session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """
    Yield an async database session.

    Uses unit-of-work pattern: services use flush() so later queries in the request
    see earlier writes, commit happens once here at request end. A failed request is
    rolled back as a whole, which is what makes batch inserts all-or-nothing.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
