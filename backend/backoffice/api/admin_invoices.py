"""Admin API routes for tenant invoices."""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.common import parse_uuid
from backoffice.api.schemas import InvoiceResponse, WarningsResponse
from backoffice.core.auth import CurrentAdmin, admin_context
from backoffice.db.session import get_db
from backoffice.services.invoices import PDF_CONTENT_TYPE, InvoiceService
from backoffice.services.storage import BlobStore, get_blob_store

router = APIRouter(prefix="/api/v1/admin", tags=["admin-invoices"])
logger = structlog.get_logger()

Store = Annotated[BlobStore, Depends(get_blob_store)]


class InvoiceUploadResponse(BaseModel):
    invoice: InvoiceResponse
    warnings: list[str] = []


class VerifyRequest(BaseModel):
    notes: str | None = None


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid invoice date") from e


def _parse_amount(value: str | None) -> Decimal | None:
    if not value:
        return None
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise HTTPException(status_code=400, detail="Invalid amount") from e


@router.get("/tenants/{tenant_id}/invoices", response_model=list[InvoiceResponse])
async def list_invoices(
    tenant_id: str,
    admin: CurrentAdmin,
    store: Store,
    db: AsyncSession = Depends(get_db),
) -> list[InvoiceResponse]:
    invoices = await InvoiceService(db, store).list_for_tenant(admin_context(tenant_id, admin))
    return [InvoiceResponse.model_validate(i) for i in invoices]


@router.post("/tenants/{tenant_id}/invoices", response_model=InvoiceUploadResponse, status_code=201)
async def upload_invoice(
    tenant_id: str,
    admin: CurrentAdmin,
    store: Store,
    file: UploadFile = File(...),
    invoice_number: str | None = Form(default=None),
    invoice_date: str | None = Form(default=None),
    amount: str | None = Form(default=None),
    description: str | None = Form(default=None),
    db: AsyncSession = Depends(get_db),
) -> InvoiceUploadResponse:
    """Upload an invoice PDF with optional metadata."""
    data = await file.read()
    outcome = await InvoiceService(db, store).upload(
        admin_context(tenant_id, admin),
        filename=file.filename or "invoice.pdf",
        data=data,
        content_type=file.content_type,
        invoice_number=invoice_number,
        invoice_date=_parse_date(invoice_date),
        amount=_parse_amount(amount),
        description=description,
    )
    return InvoiceUploadResponse(
        invoice=InvoiceResponse.model_validate(outcome.value),
        warnings=outcome.warnings,
    )


@router.delete("/tenants/{tenant_id}/invoices/{invoice_id}", response_model=WarningsResponse)
async def delete_invoice(
    tenant_id: str,
    invoice_id: str,
    admin: CurrentAdmin,
    store: Store,
    db: AsyncSession = Depends(get_db),
) -> WarningsResponse:
    """Delete an invoice; a PDF that cannot be removed is reported as a warning."""
    outcome = await InvoiceService(db, store).delete(
        admin_context(tenant_id, admin), parse_uuid(invoice_id, "invoice ID")
    )
    return WarningsResponse(warnings=outcome.warnings)


@router.patch("/tenants/{tenant_id}/invoices/{invoice_id}/verify", response_model=InvoiceResponse)
async def verify_invoice(
    tenant_id: str,
    invoice_id: str,
    admin: CurrentAdmin,
    store: Store,
    request: VerifyRequest | None = None,
    db: AsyncSession = Depends(get_db),
) -> InvoiceResponse:
    """Confirm that the customer's payment was received."""
    invoice = await InvoiceService(db, store).verify_payment(
        admin_context(tenant_id, admin),
        parse_uuid(invoice_id, "invoice ID"),
        notes=request.notes if request else None,
    )
    logger.info("admin_invoice_verified", invoice_id=invoice_id, admin=admin.email)
    return InvoiceResponse.model_validate(invoice)


@router.get("/storage/invoices/{path:path}")
async def get_invoice_file(
    path: str,
    admin: CurrentAdmin,
    store: Store,
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Serve a stored invoice PDF by its storage path."""
    data = await InvoiceService(db, store).download_path(path)
    filename = path.rsplit("/", 1)[-1] or "invoice.pdf"
    return Response(
        content=data,
        media_type=PDF_CONTENT_TYPE,
        headers={
            "Content-Disposition": f'inline; filename="{filename}"',
            "Cache-Control": "private, max-age=3600",
        },
    )
