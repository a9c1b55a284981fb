"""Database configuration and connection management."""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clinic_scheduler.config import settings
from clinic_scheduler.core.exceptions import ConflictException


def to_async_url(url: str) -> str:
    """Convert a sync database URL to its async driver equivalent."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


# Primary keys are 32-bit INTEGER columns
MAX_ROW_ID = 2**31 - 1


def parse_row_id(value: str) -> int | None:
    """Parse a decimal primary key, or None if it is not one a row could have."""
    if not value.isascii() or not value.isdigit() or len(value) > len(str(MAX_ROW_ID)):
        return None
    row_id = int(value)
    if not 1 <= row_id <= MAX_ROW_ID:
        return None
    return row_id


DATABASE_URL = to_async_url(settings.database_url)


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("postgresql+asyncpg://"):
        return {
            "pool_size": 10,
            "max_overflow": 20,
            "pool_recycle": 3600,
            "connect_args": {
                "server_settings": {
                    "application_name": settings.app_name,
                },
            },
        }
    return {}


# Create async engine with connection pooling
engine: AsyncEngine = create_async_engine(
    DATABASE_URL,
    echo=settings.debug,
    pool_pre_ping=True,
    **_engine_options(DATABASE_URL),
)

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def unit_of_work(
    db: AsyncSession,
    integrity_message: str | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Run a check-then-write sequence as one transaction.

    Commits when the block exits cleanly and rolls back on any error, so row
    locks taken inside the block are held until the decision is persisted.

    Args:
        db: Database session
        integrity_message: If given, a uniqueness violation is re-raised as a
            ConflictException with this message

    Yields:
        The same session
    """
    try:
        yield db
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        if integrity_message is None:
            raise
        raise ConflictException(integrity_message) from exc
    except Exception:
        await db.rollback()
        raise


async def check_database_connection() -> bool:
    """Check if database connection is healthy."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
