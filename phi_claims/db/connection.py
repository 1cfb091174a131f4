"""
Database Connection Management
Async SQLAlchemy with connection pooling
Source: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
Verified: 2026-10-01

Engines are built explicitly and handed to the store that owns them; there
is no module-level engine.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from phi_claims.api.config import Settings
from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)


def create_engine(settings: Settings, database_url: str | None = None) -> AsyncEngine:
    """
    Create an async engine for the data store.

    Args:
        settings: Application settings
        database_url: Override for the configured DATABASE_URL

    Source: https://docs.sqlalchemy.org/en/20/core/pooling.html
    """
    url = database_url or settings.DATABASE_URL
    logger.info(f"Creating database engine: {url.split('@')[-1]}")

    if settings.is_testing:
        # NullPool does not accept pool_size/max_overflow/pool_timeout
        return create_async_engine(url, echo=settings.DEBUG, poolclass=NullPool)

    return create_async_engine(
        url,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_pre_ping=True,  # Verify connections before using
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create the session factory bound to an engine.

    Source: https://docs.sqlalchemy.org/en/20/orm/session_basics.html
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def check_db_connection(engine: AsyncEngine) -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
