"""Database session management with async SQLAlchemy."""

from collections.abc import AsyncGenerator
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backoffice.core.config import settings
from backoffice.core.errors import DomainError

logger = structlog.get_logger()

DATABASE_URL = str(settings.DATABASE_URL)


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # Single-file databases for local runs; no pool tuning
        return {}
    return {
        "pool_pre_ping": True,
        "pool_size": 20,
        "max_overflow": 20,
        "pool_recycle": 900,  # Recycle every 15 min
        "pool_timeout": 5,  # Fail fast if pool exhausted
    }


engine = create_async_engine(DATABASE_URL, echo=False, **_engine_options(DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits on success and rolls back on any error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except DomainError:
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            logger.exception("database_session_error")
            raise
