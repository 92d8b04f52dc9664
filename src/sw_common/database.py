import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import settings
from src.sw_common.errors import StorageError

logger = logging.getLogger(__name__)

engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: yields an AsyncSession, auto-closes after request."""
    async with async_session_factory() as session:
        yield session


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit on success, roll back on any error.

    SQLAlchemy errors surface as StorageError; AppErrors raised inside the
    block (precondition failures) propagate unchanged after rollback.
    """
    try:
        yield db
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Transaction rolled back on storage error: %s", exc)
        raise StorageError(str(exc)) from exc
    except Exception:
        await db.rollback()
        raise
