"""Document ingestion progress for polling clients.

Two reads feed one view: the processing log (detailed phase per document)
and a sweep of documents still marked pending/processing (for documents the
pipeline has not logged yet). ``merge_processing_status`` combines two
already-fetched snapshots without doing any I/O, so the merge can be tested
on its own and the freshness of the inputs stays the caller's concern.
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.context import TenantContext
from backoffice.core.errors import NotFound
from backoffice.models.document import (
    Document,
    DocumentPhase,
    DocumentProcessingLog,
    DocumentStatus,
)
from backoffice.models.tenant import Tenant

logger = structlog.get_logger()

IN_FLIGHT_STATUSES = (DocumentStatus.PENDING, DocumentStatus.PROCESSING)


@dataclass(frozen=True, slots=True)
class ProcessingLogSnapshot:
    document_id: uuid.UUID | None
    filename: str
    phase: DocumentPhase
    chunks_created: int | None = None
    total_pages: int | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_row(cls, row: DocumentProcessingLog) -> "ProcessingLogSnapshot":
        return cls(
            document_id=row.document_id,
            filename=row.filename,
            phase=DocumentPhase(row.processing_status),
            chunks_created=row.chunks_created,
            total_pages=row.total_pages,
            error_message=row.error_message,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )


@dataclass(frozen=True, slots=True)
class DocumentSnapshot:
    id: uuid.UUID
    filename: str
    status: DocumentStatus

    @classmethod
    def from_row(cls, row: Document) -> "DocumentSnapshot":
        return cls(id=row.id, filename=row.filename, status=DocumentStatus(row.processing_status))


@dataclass(frozen=True, slots=True)
class DocumentProgress:
    """Merged progress entry for one document."""

    document_id: uuid.UUID
    filename: str
    phase: DocumentPhase
    chunks_created: int | None = None
    total_pages: int | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Polling payload; optional fields are left out when unknown."""
        payload: dict[str, Any] = {
            "documentId": str(self.document_id),
            "filename": self.filename,
            "phase": self.phase.value,
        }
        optional = {
            "chunksCreated": self.chunks_created,
            "totalPages": self.total_pages,
            "errorMessage": self.error_message,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }
        payload.update({key: value for key, value in optional.items() if value})
        return payload


@dataclass(frozen=True, slots=True)
class ProcessingOverview:
    documents: tuple[DocumentProgress, ...]

    @property
    def has_processing(self) -> bool:
        return len(self.documents) > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "processingDocuments": [doc.to_dict() for doc in self.documents],
            "hasProcessing": self.has_processing,
        }


def merge_processing_status(
    logs: Iterable[ProcessingLogSnapshot],
    documents: Iterable[DocumentSnapshot],
) -> ProcessingOverview:
    """Merge processing logs with the pending/processing document sweep.

    ``logs`` must be ordered newest first; the first log seen for a document
    is the one used. Documents from the sweep only fill in ids that have no
    log entry, with a phase inferred from their coarse status. Entries in a
    terminal phase are dropped from the result.
    """
    by_document: dict[uuid.UUID, DocumentProgress] = {}

    for log in logs:
        if not log.document_id or log.document_id in by_document:
            continue
        by_document[log.document_id] = DocumentProgress(
            document_id=log.document_id,
            filename=log.filename,
            phase=log.phase,
            chunks_created=log.chunks_created,
            total_pages=log.total_pages,
            error_message=log.error_message,
            started_at=log.started_at,
            completed_at=log.completed_at,
        )

    for doc in documents:
        if doc.status not in IN_FLIGHT_STATUSES or doc.id in by_document:
            continue
        by_document[doc.id] = DocumentProgress(
            document_id=doc.id,
            filename=doc.filename,
            phase=DocumentPhase.infer_from_status(doc.status),
        )

    in_flight = tuple(entry for entry in by_document.values() if not entry.phase.is_terminal)
    return ProcessingOverview(documents=in_flight)


class DocumentStatusService:
    """Runs the two reads for a tenant and hands them to the merge."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(component="document_status")

    async def _log_snapshots(self, tenant_id: str) -> list[ProcessingLogSnapshot]:
        result = await self.db.execute(
            select(DocumentProcessingLog)
            .where(DocumentProcessingLog.tenant_id == tenant_id)
            .order_by(DocumentProcessingLog.started_at.desc().nulls_last())
        )
        snapshots = []
        for row in result.scalars().all():
            try:
                snapshots.append(ProcessingLogSnapshot.from_row(row))
            except ValueError:
                self.logger.warning(
                    "unknown_processing_phase",
                    log_id=str(row.id),
                    phase=row.processing_status,
                )
        return snapshots

    async def _document_snapshots(self, tenant_id: str) -> list[DocumentSnapshot]:
        result = await self.db.execute(
            select(Document).where(
                Document.tenant_id == tenant_id,
                Document.processing_status.in_([s.value for s in IN_FLIGHT_STATUSES]),
            )
        )
        return [DocumentSnapshot.from_row(row) for row in result.scalars().all()]

    async def get_processing_status(self, ctx: TenantContext) -> ProcessingOverview:
        """In-flight documents of the tenant.

        Raises:
            NotFound: Tenant does not exist.
        """
        if await self.db.get(Tenant, ctx.tenant_id) is None:
            raise NotFound("Tenant not found")
        logs = await self._log_snapshots(ctx.tenant_id)
        documents = await self._document_snapshots(ctx.tenant_id)
        overview = merge_processing_status(logs, documents)
        self.logger.debug(
            "processing_status_computed",
            tenant_id=ctx.tenant_id,
            in_flight=len(overview.documents),
        )
        return overview
