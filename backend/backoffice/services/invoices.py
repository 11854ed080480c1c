"""Invoice store: PDF blobs in the invoices bucket plus their metadata rows."""

import time
import uuid
from datetime import UTC, date, datetime
from decimal import Decimal

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import settings
from backoffice.core.context import TenantContext
from backoffice.core.errors import (
    DependencyFailure,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationFailed,
)
from backoffice.models.invoice import Invoice
from backoffice.models.tenant import Tenant
from backoffice.monitoring.metrics import record_invoice_uploaded
from backoffice.services.compensation import Outcome, perform_then, perform_with_cleanup
from backoffice.services.storage import BlobNotFound, BlobStore, BlobStoreError, clean_filename

logger = structlog.get_logger()

PDF_CONTENT_TYPE = "application/pdf"


class InvoiceService:
    """Tenant-scoped invoice operations for both the admin console and the portal."""

    def __init__(self, db: AsyncSession, store: BlobStore):
        self.db = db
        self.store = store
        self.bucket = settings.INVOICE_BUCKET
        self.logger = logger.bind(component="invoice_service")

    async def _get_owned(self, ctx: TenantContext, invoice_id: uuid.UUID) -> Invoice:
        invoice = await self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFound("Invoice not found")
        if invoice.tenant_id != ctx.tenant_id:
            self.logger.warning(
                "invoice_tenant_mismatch",
                invoice_id=str(invoice_id),
                tenant_id=ctx.tenant_id,
            )
            raise Forbidden("No access to this invoice")
        return invoice

    async def list_for_tenant(self, ctx: TenantContext) -> list[Invoice]:
        """Invoices of the tenant, newest invoice date first."""
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.tenant_id == ctx.tenant_id)
            .order_by(Invoice.invoice_date.desc(), Invoice.created_at.desc())
        )
        return list(result.scalars().all())

    async def get(self, ctx: TenantContext, invoice_id: uuid.UUID) -> Invoice:
        return await self._get_owned(ctx, invoice_id)

    async def upload(
        self,
        ctx: TenantContext,
        filename: str,
        data: bytes,
        content_type: str | None,
        invoice_number: str | None = None,
        invoice_date: date | None = None,
        amount: Decimal | None = None,
        description: str | None = None,
    ) -> Outcome[Invoice]:
        """Store the PDF, then its row. A failed insert removes the stored PDF.

        Raises:
            NotFound: Tenant does not exist.
            ValidationFailed: Not a PDF, empty, or too large.
            DependencyFailure: Blob upload or row insert failed.
        """
        log = self.logger.bind(tenant_id=ctx.tenant_id, filename=filename)

        if await self.db.get(Tenant, ctx.tenant_id) is None:
            raise NotFound("Tenant not found")
        if content_type != PDF_CONTENT_TYPE:
            raise ValidationFailed("Only PDF files are allowed")
        if not data:
            raise ValidationFailed("No file uploaded")
        if len(data) > settings.INVOICE_MAX_UPLOAD_BYTES:
            raise ValidationFailed("File is too large")

        timestamp = int(time.time() * 1000)
        path = f"{ctx.tenant_id}/{timestamp}_{clean_filename(filename)}"

        async def store_blob() -> str:
            try:
                return await self.store.upload(
                    self.bucket, path, data, content_type=PDF_CONTENT_TYPE, upsert=False
                )
            except BlobStoreError as exc:
                log.error("invoice_blob_upload_failed", error=str(exc))
                raise DependencyFailure("Could not upload file") from exc

        async def insert_row(stored_path: str) -> Invoice:
            invoice = Invoice(
                tenant_id=ctx.tenant_id,
                filename=filename,
                file_path=stored_path,
                file_size=len(data),
                invoice_number=invoice_number or None,
                invoice_date=invoice_date,
                amount=amount,
                description=description or None,
            )
            self.db.add(invoice)
            try:
                await self.db.commit()
            except SQLAlchemyError as exc:
                await self.db.rollback()
                raise DependencyFailure("Could not save invoice") from exc
            await self.db.refresh(invoice)
            return invoice

        async def remove_blob(stored_path: str) -> None:
            await self.store.delete(self.bucket, stored_path)

        outcome = await perform_then(store_blob, insert_row, remove_blob, step="invoice_upload")
        record_invoice_uploaded()
        log.info("invoice_uploaded", invoice_id=str(outcome.value.id), size=len(data))
        return outcome

    async def delete(self, ctx: TenantContext, invoice_id: uuid.UUID) -> Outcome[None]:
        """Delete the row, then the PDF as best effort.

        A PDF that cannot be removed is reported as a warning; the row stays
        deleted.
        """
        invoice = await self._get_owned(ctx, invoice_id)
        file_path = invoice.file_path
        log = self.logger.bind(tenant_id=ctx.tenant_id, invoice_id=str(invoice_id))

        async def delete_row() -> str:
            await self.db.delete(invoice)
            try:
                await self.db.commit()
            except SQLAlchemyError as exc:
                await self.db.rollback()
                raise DependencyFailure("Could not delete invoice") from exc
            return file_path

        async def delete_blob(path: str) -> None:
            if path:
                await self.store.delete(self.bucket, path)

        deleted = await perform_with_cleanup(delete_row, delete_blob, step="invoice_delete")
        log.info("invoice_deleted", warnings=deleted.warnings)
        return Outcome(value=None, warnings=deleted.warnings)

    async def verify_payment(
        self, ctx: TenantContext, invoice_id: uuid.UUID, notes: str | None = None
    ) -> Invoice:
        """Admin confirms the payment was received. One-way."""
        invoice = await self._get_owned(ctx, invoice_id)
        if invoice.is_verified_by_admin:
            raise InvalidState("Invoice already verified")

        result = await self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice.id, Invoice.is_verified_by_admin.is_(False))
            .values(
                is_verified_by_admin=True,
                admin_verified_at=datetime.now(UTC),
                admin_notes=notes or None,
            )
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise InvalidState("Invoice already verified")
        await self.db.commit()
        await self.db.refresh(invoice)

        self.logger.info("invoice_verified", tenant_id=ctx.tenant_id, invoice_id=str(invoice_id))
        return invoice

    async def mark_paid(self, ctx: TenantContext, invoice_id: uuid.UUID) -> Invoice:
        """Customer reports the invoice as paid. One-way.

        Never touches the admin verification flag, and ``customer_paid_at`` is
        written only by the first successful call.
        """
        invoice = await self._get_owned(ctx, invoice_id)
        if invoice.is_paid_by_customer:
            raise InvalidState("Invoice already marked as paid")

        result = await self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice.id, Invoice.is_paid_by_customer.is_(False))
            .values(is_paid_by_customer=True, customer_paid_at=datetime.now(UTC))
        )
        if result.rowcount == 0:
            # Another request got there first
            await self.db.rollback()
            raise InvalidState("Invoice already marked as paid")
        await self.db.commit()
        await self.db.refresh(invoice)

        self.logger.info("invoice_marked_paid", tenant_id=ctx.tenant_id, invoice_id=str(invoice_id))
        return invoice

    async def download_file(self, ctx: TenantContext, invoice_id: uuid.UUID) -> tuple[str, bytes]:
        """Return ``(filename, pdf_bytes)`` for an invoice of the tenant."""
        invoice = await self._get_owned(ctx, invoice_id)
        data = await self.download_path(invoice.file_path)
        return invoice.filename, data

    async def download_path(self, path: str) -> bytes:
        """Raw bytes at ``path`` in the invoices bucket."""
        if not path:
            raise ValidationFailed("No file path provided")
        try:
            return await self.store.download(self.bucket, path)
        except BlobNotFound as exc:
            raise NotFound("File not found") from exc
        except BlobStoreError as exc:
            raise DependencyFailure("Could not read file") from exc
