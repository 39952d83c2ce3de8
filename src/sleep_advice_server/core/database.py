"""Database initialization and engine management."""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from sleep_advice_server.core.config import settings
from sleep_advice_server.models import Base

logger = logging.getLogger(__name__)


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """Create the async database engine.

    Args:
        database_url: Override for ``settings.database_url``

    Returns:
        Async SQLAlchemy engine
    """
    return create_async_engine(
        database_url or settings.database_url,
        echo=False,
        pool_pre_ping=True,
    )


async def init_database(engine: AsyncEngine) -> None:
    """Create any missing tables.

    Tables are created from the ORM metadata; existing tables are left untouched.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"Database initialized ({engine.url.render_as_string(hide_password=True)})")


async def close_database(engine: AsyncEngine) -> None:
    """Close database connection pool."""
    await engine.dispose()
