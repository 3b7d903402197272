"""
Database connection and session management.
Uses SQLAlchemy async with asyncpg for PostgreSQL.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from app.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def get_async_database_url(url: str) -> str:
    """
    Convert postgres:// to postgresql+asyncpg:// for async driver.
    Also convert sslmode=require to ssl=require for asyncpg compatibility.
    """
    # Convert protocol
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    # Convert sslmode to ssl for asyncpg
    if url.startswith("postgresql+asyncpg://"):
        url = url.replace("sslmode=", "ssl=")

    return url


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given database URL."""
    return create_async_engine(
        get_async_database_url(url),
        echo=echo,
        pool_pre_ping=True,
    )


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


settings = get_settings()

# Create async engine
engine = create_engine_for(settings.database_url, echo=settings.debug)

# Create async session factory
async_session_maker = create_session_maker(engine)


async def init_db(bind: AsyncEngine | None = None):
    """Initialize database tables."""
    # Register every mapped table on Base.metadata
    import app.models.location  # noqa: F401
    import app.models.booking  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _retry_delay(attempt: int) -> float:
    base = 0.05 * (2 ** (attempt - 1))
    return base + random.uniform(0, 0.02 * attempt)


async def with_db_retry(
    op_name: str,
    func: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    retry_on: tuple = (OperationalError,),
) -> T:
    """
    Run a coroutine-producing callable, retrying transient failures.
    Only the exception types in ``retry_on`` are retried; anything else propagates.
    """
    attempt = 1
    while True:
        try:
            return await func()
        except retry_on as exc:
            if attempt >= max_attempts:
                raise
            delay = _retry_delay(attempt)
            logger.warning(
                "Transient failure in %s (attempt %d/%d), retrying in %.2fs: %s",
                op_name,
                attempt,
                max_attempts,
                delay,
                exc,
            )
            await asyncio.sleep(delay)
            attempt += 1
