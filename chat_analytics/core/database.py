# DB connections

from contextlib import contextmanager
from typing import AsyncIterator, Iterator

from fastapi import Request
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
import structlog

from chat_analytics.core.config import Settings
from chat_analytics.core.errors import StorageError, StorageUnavailable
from chat_analytics.models.event import Base

logger = structlog.get_logger()


def create_engine_for(settings: Settings) -> AsyncEngine:
    """Async engine with a small, bounded pool"""
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=settings.db_pool_size,
        max_overflow=0,
        pool_timeout=settings.db_pool_timeout,
    )


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create tables directly (local dev and tests; production uses alembic)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency for getting async database session"""
    async with request.app.state.sessionmaker() as session:
        try:
            yield session
        finally:
            await session.close()


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into StorageError, logging the detail"""
    try:
        yield
    except sa_exc.TimeoutError as e:
        logger.error("db_pool_exhausted", operation=operation, error=str(e))
        raise StorageUnavailable(headers={"Retry-After": "1"}) from e
    except sa_exc.SQLAlchemyError as e:
        logger.error("db_operation_failed", operation=operation, error=str(e))
        raise StorageError() from e
    except OSError as e:
        # Driver-level connection failures surface as OSError on some backends
        logger.error("db_unreachable", operation=operation, error=str(e))
        raise StorageError() from e
