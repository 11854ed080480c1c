"""Customer portal API routes.

Every route resolves the caller to their own tenant first; no route takes a
tenant id from the client.
"""

from datetime import datetime
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.common import attachment_headers, parse_uuid
from backoffice.api.schemas import (
    ChatLogPageResponse,
    ChatLogResponse,
    CustomerResponse,
    DocumentResponse,
    InvoiceResponse,
    ProductResponse,
    WarningsResponse,
)
from backoffice.core.auth import CustomerContext
from backoffice.db.session import get_db
from backoffice.services import analytics, directory
from backoffice.services.documents import DocumentService
from backoffice.services.invoices import PDF_CONTENT_TYPE, InvoiceService
from backoffice.services.storage import BlobStore, get_blob_store

router = APIRouter(prefix="/api/v1/portal", tags=["portal"])
logger = structlog.get_logger()

Store = Annotated[BlobStore, Depends(get_blob_store)]


# =============================================================================
# Pydantic Schemas
# =============================================================================


class MeResponse(BaseModel):
    customer: CustomerResponse


class UsageStatsResponse(BaseModel):
    document_count: int
    chat_count: int
    total_cost: float
    last_chat_at: datetime | None = None


class ProductStats(BaseModel):
    documents_count: int
    chats_last_30_days: int
    chats_total: int
    cost_this_month: float


class ProductDetailResponse(BaseModel):
    product: ProductResponse
    stats: ProductStats


def _page_response(page: analytics.ChatLogPage) -> ChatLogPageResponse:
    return ChatLogPageResponse(
        logs=[ChatLogResponse.model_validate(log) for log in page.logs],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        has_more=page.has_more,
    )


# =============================================================================
# Account
# =============================================================================


@router.get("/me", response_model=MeResponse)
async def get_me(
    ctx: CustomerContext,
    db: AsyncSession = Depends(get_db),
) -> MeResponse:
    """The logged-in portal user."""
    customer = await directory.get_customer_by_email(db, ctx.principal)
    return MeResponse(customer=CustomerResponse.model_validate(customer))


# =============================================================================
# Invoices
# =============================================================================


@router.get("/invoices", response_model=list[InvoiceResponse])
async def list_invoices(
    ctx: CustomerContext,
    store: Store,
    db: AsyncSession = Depends(get_db),
) -> list[InvoiceResponse]:
    invoices = await InvoiceService(db, store).list_for_tenant(ctx)
    return [InvoiceResponse.model_validate(i) for i in invoices]


@router.post("/invoices/{invoice_id}/mark-paid", response_model=InvoiceResponse)
async def mark_invoice_paid(
    invoice_id: str,
    ctx: CustomerContext,
    store: Store,
    db: AsyncSession = Depends(get_db),
) -> InvoiceResponse:
    """Report an invoice as paid. Can only be done once."""
    invoice = await InvoiceService(db, store).mark_paid(ctx, parse_uuid(invoice_id, "invoice ID"))
    return InvoiceResponse.model_validate(invoice)


@router.get("/invoices/{invoice_id}/file")
async def download_invoice(
    invoice_id: str,
    ctx: CustomerContext,
    store: Store,
    db: AsyncSession = Depends(get_db),
) -> Response:
    filename, data = await InvoiceService(db, store).download_file(
        ctx, parse_uuid(invoice_id, "invoice ID")
    )
    return Response(content=data, media_type=PDF_CONTENT_TYPE, headers=attachment_headers(filename))


# =============================================================================
# Usage
# =============================================================================


@router.get("/stats", response_model=UsageStatsResponse)
async def get_stats(
    ctx: CustomerContext,
    db: AsyncSession = Depends(get_db),
) -> UsageStatsResponse:
    return UsageStatsResponse(**await analytics.get_usage_stats(db, ctx))


@router.get("/logs", response_model=ChatLogPageResponse)
async def list_logs(
    ctx: CustomerContext,
    db: AsyncSession = Depends(get_db),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> ChatLogPageResponse:
    """Newest-first chat logs across all products of the tenant."""
    page = await analytics.list_chat_logs(db, ctx, limit=limit, offset=offset)
    return _page_response(page)


# =============================================================================
# Products
# =============================================================================


@router.get("/products", response_model=list[ProductResponse])
async def list_products(
    ctx: CustomerContext,
    store: Store,
    db: AsyncSession = Depends(get_db),
) -> list[ProductResponse]:
    products = await DocumentService(db, store).list_products(ctx)
    return [ProductResponse.model_validate(p) for p in products]


@router.get("/products/{product_id}", response_model=ProductDetailResponse)
async def get_product(
    product_id: str,
    ctx: CustomerContext,
    store: Store,
    db: AsyncSession = Depends(get_db),
) -> ProductDetailResponse:
    product_uuid = parse_uuid(product_id, "product ID")
    product = await DocumentService(db, store).get_product(ctx, product_uuid)
    stats = await analytics.get_product_stats(db, ctx, product_uuid)
    return ProductDetailResponse(
        product=ProductResponse.model_validate(product),
        stats=ProductStats(**stats),
    )


@router.get("/products/{product_id}/logs", response_model=ChatLogPageResponse)
async def list_product_logs(
    product_id: str,
    ctx: CustomerContext,
    store: Store,
    db: AsyncSession = Depends(get_db),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> ChatLogPageResponse:
    product_uuid = parse_uuid(product_id, "product ID")
    await DocumentService(db, store).get_product(ctx, product_uuid)
    page = await analytics.list_chat_logs(
        db, ctx, limit=limit, offset=offset, product_id=product_uuid
    )
    return _page_response(page)


@router.get("/products/{product_id}/documents", response_model=list[DocumentResponse])
async def list_documents(
    product_id: str,
    ctx: CustomerContext,
    store: Store,
    db: AsyncSession = Depends(get_db),
) -> list[DocumentResponse]:
    documents = await DocumentService(db, store).list_for_product(
        ctx, parse_uuid(product_id, "product ID")
    )
    return [DocumentResponse.model_validate(d) for d in documents]


@router.delete("/products/{product_id}/documents/{document_id}", response_model=WarningsResponse)
async def delete_document(
    product_id: str,
    document_id: str,
    ctx: CustomerContext,
    store: Store,
    db: AsyncSession = Depends(get_db),
) -> WarningsResponse:
    """Delete a document with its chunks; file cleanup failures become warnings."""
    outcome = await DocumentService(db, store).delete(
        ctx,
        parse_uuid(product_id, "product ID"),
        parse_uuid(document_id, "document ID"),
    )
    return WarningsResponse(warnings=outcome.warnings)


@router.get("/products/{product_id}/documents/{document_id}/download")
async def download_document(
    product_id: str,
    document_id: str,
    ctx: CustomerContext,
    store: Store,
    db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
    """Redirect to a short-lived signed URL for the document file."""
    url = await DocumentService(db, store).download_url(
        ctx,
        parse_uuid(product_id, "product ID"),
        parse_uuid(document_id, "document ID"),
    )
    return RedirectResponse(url=url, status_code=307)
