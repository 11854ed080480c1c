"""Health check endpoints.

- /health - Basic health check
- /health/db - Database connectivity
- /health/storage - Blob store reachability
- /health/ready - Readiness probe
- /health/live - Liveness probe
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.db.session import get_db
from backoffice.services.storage import BlobStore, BlobStoreError, get_blob_store

logger = structlog.get_logger()

router = APIRouter()


async def _database_ok(db: AsyncSession) -> str | None:
    """None when the database answers, otherwise the error text."""
    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
    except Exception as e:
        logger.warning("health_database_unavailable", error=str(e))
        return str(e)
    return None


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


@router.get("/health/db")
async def health_check_db(response: Response, db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    """Database health check endpoint."""
    error = await _database_ok(db)
    if error:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unhealthy", "database": error}
    return {"status": "healthy", "database": "connected"}


@router.get("/health/storage")
async def health_check_storage(
    response: Response,
    store: Annotated[BlobStore, Depends(get_blob_store)],
) -> dict[str, str]:
    """Blob store health check: lists the invoices bucket root."""
    try:
        await store.list(settings.INVOICE_BUCKET)
    except BlobStoreError as e:
        logger.warning("health_storage_unavailable", error=str(e))
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unhealthy", "storage": str(e)}
    return {"status": "healthy", "storage": settings.STORAGE_BACKEND}


@router.get("/health/ready")
async def readiness_probe(
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> dict[str, str]:
    """Readiness probe. Returns 503 while the database is unavailable."""
    error = await _database_ok(db)
    if error:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready", "reason": f"database: {error}"}
    return {"status": "ready"}


@router.get("/health/live")
async def liveness_probe() -> dict[str, str]:
    """Liveness probe.

    A simple, fast check that doesn't depend on external services.
    """
    return {"status": "alive"}
