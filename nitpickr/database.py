"""
Database session management.

Provides async SQLAlchemy session factory and dependency injection.
"""

import os
from typing import Any, AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from nitpickr.config.settings import get_settings
from nitpickr.models.base import Base

settings = get_settings()

DATABASE_URL = settings.database_url

# Convert postgresql:// to postgresql+asyncpg:// if needed
if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)


def engine_options(database_url: str, env: Optional[str] = None) -> dict[str, Any]:
    """Keyword arguments for create_async_engine.

    Tests run without a pool; SQLite gets the dialect's default pool;
    everything else uses a sized queue pool.
    """
    options: dict[str, Any] = {"echo": settings.sql_echo, "pool_pre_ping": True}
    if env == "test":
        options["poolclass"] = NullPool
    elif not database_url.startswith("sqlite"):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return options


engine = create_async_engine(DATABASE_URL, **engine_options(DATABASE_URL, os.getenv("ENV")))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    Usage in FastAPI:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Item))
            return result.scalars().all()

    Yields:
        AsyncSession: Database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """
    Create all tables defined in SQLAlchemy models.

    Development and tests only. Production uses Alembic migrations.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db() -> None:
    """Drop all database tables. Deletes all data."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def close_db() -> None:
    """Dispose the engine on application shutdown."""
    await engine.dispose()
