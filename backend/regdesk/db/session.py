"""
Async engine, session factory and store error translation.

Routes commit explicitly through `commit_or_raise` so that a failing commit
still surfaces as a typed condition in the response.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from regdesk.core.config import get_settings
from regdesk.core.exceptions import (
    DuplicateQueueNumber,
    RegistrationConflict,
    StoreUnavailable,
)
from regdesk.core.logging import get_logger
from regdesk.core.metrics import store_errors

logger = get_logger(__name__)
settings = get_settings()


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
    }


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **_engine_options(settings.DATABASE_URL),
)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def translate_store_errors(operation: str):
    """
    Map raw store exceptions to typed conditions.

    A violated (event_id, queue_number) uniqueness constraint means the
    allocator handed out a number twice; that is logged loudly.
    """
    try:
        yield
    except IntegrityError as e:
        message = str(e.orig)
        if "queue_number" in message:
            store_errors.labels(kind="duplicate_queue_number").inc()
            logger.error("duplicate_queue_number", operation=operation, error=message)
            raise DuplicateQueueNumber(detail="Queue number already issued for this event") from e
        logger.warning("store_constraint_violation", operation=operation, error=message)
        raise RegistrationConflict(detail="Write rejected by a store constraint") from e
    except (OperationalError, InterfaceError, DBAPIError, OSError) as e:
        store_errors.labels(kind="unavailable").inc()
        logger.error("store_unavailable", operation=operation, error=str(e))
        raise StoreUnavailable() from e


async def commit_or_raise(db: AsyncSession, operation: str = "commit") -> None:
    async with translate_store_errors(operation):
        try:
            await db.commit()
        except Exception:
            await db.rollback()
            raise
