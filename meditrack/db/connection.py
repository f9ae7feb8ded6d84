"""
Database Connection Management
Async SQLAlchemy engine and session maker for the live repositories
Source: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from meditrack.core.config import get_settings
from meditrack.models import Base
from meditrack.utils.logging import get_logger

logger = get_logger(__name__)


# Global engine instance
_engine: AsyncEngine | None = None
_async_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get or create the global async engine.

    Testing runs use NullPool (one connection per session, nothing pooled);
    every other environment uses the default queue pool with the configured
    sizes.
    """
    global _engine

    if _engine is None:
        settings = get_settings()
        logger.info(f"Creating database engine: {settings.DATABASE_URL.split('@')[-1]}")

        if settings.is_testing:
            # NullPool does not accept pool_size/max_overflow/pool_timeout
            _engine = create_async_engine(
                settings.DATABASE_URL,
                echo=settings.DEBUG,
                poolclass=NullPool,
            )
        else:
            _engine = create_async_engine(
                settings.DATABASE_URL,
                echo=settings.DEBUG,
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                pool_pre_ping=True,
            )

        logger.info("Database engine created successfully")

    return _engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # entities stay readable after the unit of work commits
        autoflush=False,
    )


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get or create the global session maker."""
    global _async_session_maker

    if _async_session_maker is None:
        _async_session_maker = create_session_maker(get_engine())
        logger.info("Session maker created successfully")

    return _async_session_maker


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create every table registered on ``Base.metadata`` that does not exist yet."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database schema ready: {', '.join(sorted(Base.metadata.tables))}")


async def close_db_connection() -> None:
    """Dispose the connection pool (application shutdown)."""
    global _engine, _async_session_maker

    if _engine is not None:
        logger.info("Closing database connection pool...")
        await _engine.dispose()
        _engine = None
        _async_session_maker = None
        logger.info("Database connection pool closed")


async def check_db_connection(engine: AsyncEngine | None = None) -> bool:
    """Return True when ``SELECT 1`` succeeds."""
    try:
        engine = engine or get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
