"""Admin API routes for tenant document ingestion."""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.auth import CurrentAdmin, admin_context
from backoffice.db.session import get_db
from backoffice.services.documents_progress import DocumentStatusService

router = APIRouter(prefix="/api/v1/admin", tags=["admin-documents"])


@router.get("/tenants/{tenant_id}/documents/status")
async def get_documents_status(
    tenant_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Documents still being ingested, for polling clients.

    Returns ``processingDocuments`` and ``hasProcessing``.
    """
    overview = await DocumentStatusService(db).get_processing_status(
        admin_context(tenant_id, admin)
    )
    return overview.to_dict()
