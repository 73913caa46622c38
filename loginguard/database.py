import logging

from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from loginguard.config import settings
from loginguard.db.base import Base

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine with backend-appropriate pooling"""
    url = make_url(database_url)
    backend = url.get_backend_name()
    logger.info(f"Database backend: {backend}")

    if backend == "sqlite":
        # SQLite serialises writers; the busy timeout lets concurrent
        # upserts wait for the lock instead of failing.
        return create_async_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo,
        )

    return create_async_engine(
        database_url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=echo,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(
    settings.DATABASE_URL, echo=settings.ENVIRONMENT == "development" and settings.DEBUG
)
async_session = build_session_factory(engine)

# Import models so metadata and Alembic see them
from loginguard.models import LoginAttempt, RiskThreshold, UserDevice  # noqa


async def init_db(bind: AsyncEngine = None):
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database initialized successfully.")


async def close_db(bind: AsyncEngine = None):
    """Close database connections gracefully"""
    try:
        await (bind or engine).dispose()
        logger.info("Database connections closed.")
    except Exception as e:
        logger.error(f"Error closing database connections: {e}")
