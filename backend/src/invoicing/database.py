"""Database engine, session factory and request session dependency."""
from typing import Any, AsyncGenerator

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from invoicing.config import settings

logger = structlog.get_logger(__name__)


def engine_options(database_url: str) -> dict[str, Any]:
    """Keyword arguments for ``create_async_engine``; SQLite has no connection pool sizing."""
    options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if make_url(database_url).get_backend_name() != "sqlite":
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return options


engine: AsyncEngine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

# Sessions outlive commits so services can return loaded invoices
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide the request's database session.

    The whole request runs in one transaction: committed when the handler
    returns, rolled back when it raises.

    Yields:
        AsyncSession: Session bound to the request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Close every pooled connection (application shutdown)."""
    await engine.dispose()
    logger.info("database_engine_disposed")


Base = declarative_base()
