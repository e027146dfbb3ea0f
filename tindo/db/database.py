"""
Tindo API - Async SQLAlchemy engine and session dependency
"""
import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from tindo.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

engine = create_async_engine(settings.database_url, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; returned to the pool on every exit path."""
    async with AsyncSessionLocal() as session:
        yield session


async def safe_rollback(db: AsyncSession) -> None:
    """Roll back, logging (not raising) if the rollback itself fails."""
    try:
        await db.rollback()
    except Exception:
        logger.warning("Rollback failed; connection will be discarded", exc_info=True)
