"""
Database Engine & Session Management

The API process keeps one pooled engine for its lifetime. Worker tasks run
each job in a fresh event loop and build their own unpooled engine with
``build_engine(url, poolclass=NullPool)``.
"""
from typing import Any, AsyncIterator
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
import logging

from flybook.config import settings

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


def build_engine(url: str, **overrides: Any) -> AsyncEngine:
    """Async engine for ``url``; PostgreSQL engines get pool and statement limits"""
    options: dict = {"echo": settings.DEBUG, "pool_pre_ping": True}

    if url.startswith("postgresql"):
        options["connect_args"] = {
            "command_timeout": 30,  # Query timeout in seconds
            "server_settings": {"statement_timeout": "30000"},  # 30 seconds max per statement
        }
        if overrides.get("poolclass") is not NullPool:
            options.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_recycle=3600,  # Recycle connections after 1 hour
                pool_timeout=10,  # Wait max 10 seconds for a connection from pool
            )

    options.update(overrides)
    return create_async_engine(url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    # Objects stay readable after commit; rows are never lazily reloaded
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = build_session_factory(engine)


async def init_db():
    """Create any missing tables"""
    import flybook.models  # noqa: F401  registers tables on Base.metadata

    logger.info("Initializing database connection...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready")


async def close_db():
    """Close database connection"""
    logger.info("Closing database connection...")
    await engine.dispose()
    logger.info("Database connection closed")


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency that provides a database session
    Usage: db: AsyncSession = Depends(get_db)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
