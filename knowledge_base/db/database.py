"""
Database Connection Module

Async SQLAlchemy engine, session factory and the FastAPI
dependency that hands one session to each request.

The ARQ worker uses AsyncSessionLocal directly, since it runs
outside the request cycle.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from knowledge_base.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""
    pass


# ============================================================
# Engine & Session Factory
# ============================================================

def _engine_options() -> dict:
    options = {
        "echo": settings.SQLALCHEMY_ECHO,
        "pool_pre_ping": True,
    }
    # Pool sizing only applies to server databases
    if not settings.DATABASE_URL.startswith("sqlite"):
        if settings.DB_POOL_MIN_SIZE:
            options["pool_size"] = settings.DB_POOL_MIN_SIZE
        if settings.DB_POOL_MAX_SIZE:
            options["max_overflow"] = max(
                settings.DB_POOL_MAX_SIZE - (settings.DB_POOL_MIN_SIZE or 5), 0
            )
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options())

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields a database session.

    The session is rolled back if the request raises and is
    always closed afterwards.

    Usage:
        @router.get("/")
        async def endpoint(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# ============================================================
# Health Check
# ============================================================

async def check_db_connection() -> bool:
    """
    Check if the database is reachable.

    Returns:
        True if a trivial query succeeds, False otherwise
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
