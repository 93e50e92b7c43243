"""
Async engine, session factory and the FastAPI session dependencies.

Request handlers get one AsyncSession per request through `get_db`.
Work that fans out across tasks takes the factory from
`get_session_factory` and opens a session per task.
"""

import logging

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from civicconnect.app.core.config import settings

logger = logging.getLogger("civicconnect.db")

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def init_models() -> None:
    """Create missing tables for every model registered on Base."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready (%d tables)", len(Base.metadata.tables))


async def close_engine() -> None:
    await engine.dispose()


async def get_db():
    """Yield a request-scoped session; uncommitted work is rolled back on close."""
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker:
    """
    Dependency handing out the session factory itself.

    An AsyncSession must not be shared across tasks, so dashboard metrics
    and bulk transitions open one session per concurrent branch.
    """
    return AsyncSessionLocal
