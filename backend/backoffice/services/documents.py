"""Tenant products and their knowledge-base documents."""

import uuid

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.context import TenantContext
from backoffice.core.errors import DependencyFailure, Forbidden, NotFound
from backoffice.models.document import Document, DocumentChunk
from backoffice.models.tenant import TenantProduct
from backoffice.services.compensation import Outcome, perform_with_cleanup
from backoffice.services.storage import BlobStore, BlobStoreError

logger = structlog.get_logger()


class DocumentService:
    """Product and document access for one tenant at a time."""

    def __init__(self, db: AsyncSession, store: BlobStore):
        self.db = db
        self.store = store
        self.bucket = settings.DOCUMENT_BUCKET
        self.logger = logger.bind(component="document_service")

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    async def list_products(
        self, ctx: TenantContext, active_only: bool = True
    ) -> list[TenantProduct]:
        query = select(TenantProduct).where(TenantProduct.tenant_id == ctx.tenant_id)
        if active_only:
            query = query.where(TenantProduct.is_active.is_(True))
        result = await self.db.execute(query.order_by(TenantProduct.created_at))
        return list(result.scalars().all())

    async def get_product(self, ctx: TenantContext, product_id: uuid.UUID) -> TenantProduct:
        product = await self.db.get(TenantProduct, product_id)
        if product is None:
            raise NotFound("Product not found")
        if product.tenant_id != ctx.tenant_id:
            raise Forbidden("No access to this product")
        return product

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    async def list_for_product(self, ctx: TenantContext, product_id: uuid.UUID) -> list[Document]:
        """Documents of a product, newest first."""
        await self.get_product(ctx, product_id)
        result = await self.db.execute(
            select(Document)
            .where(
                Document.tenant_id == ctx.tenant_id,
                Document.tenant_product_id == product_id,
            )
            .order_by(Document.created_at.desc())
        )
        return list(result.scalars().all())

    async def _get_owned(
        self, ctx: TenantContext, product_id: uuid.UUID, document_id: uuid.UUID
    ) -> Document:
        await self.get_product(ctx, product_id)
        document = await self.db.get(Document, document_id)
        if document is None or document.tenant_product_id != product_id:
            raise NotFound("Document not found")
        if document.tenant_id != ctx.tenant_id:
            raise Forbidden("No access to this document")
        return document

    async def delete(
        self, ctx: TenantContext, product_id: uuid.UUID, document_id: uuid.UUID
    ) -> Outcome[None]:
        """Remove chunks and row together, then the stored file as best effort."""
        document = await self._get_owned(ctx, product_id, document_id)
        file_path = document.file_path
        log = self.logger.bind(tenant_id=ctx.tenant_id, document_id=str(document_id))

        async def delete_rows() -> str | None:
            try:
                await self.db.execute(
                    delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
                )
                await self.db.delete(document)
                await self.db.commit()
            except SQLAlchemyError as exc:
                await self.db.rollback()
                raise DependencyFailure("Could not delete document") from exc
            return file_path

        async def delete_blob(path: str | None) -> None:
            if path:
                await self.store.delete(self.bucket, path)

        deleted = await perform_with_cleanup(delete_rows, delete_blob, step="document_delete")
        log.info("document_deleted", warnings=deleted.warnings)
        return Outcome(value=None, warnings=deleted.warnings)

    async def download_url(
        self, ctx: TenantContext, product_id: uuid.UUID, document_id: uuid.UUID
    ) -> str:
        """Short-lived URL for the stored file."""
        document = await self._get_owned(ctx, product_id, document_id)
        if not document.file_path:
            raise NotFound("Document has no file")
        try:
            return await self.store.signed_url(
                self.bucket, document.file_path, settings.SIGNED_URL_TTL_SECONDS
            )
        except BlobStoreError as exc:
            self.logger.error("signed_url_failed", document_id=str(document_id), error=str(exc))
            raise DependencyFailure("Could not create download URL") from exc

    async def count_for_tenant(self, ctx: TenantContext) -> int:
        count = await self.db.scalar(
            select(func.count()).select_from(Document).where(Document.tenant_id == ctx.tenant_id)
        )
        return count or 0
