"""Response schemas shared by the admin and portal routers."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel


class ProductResponse(BaseModel):
    """Product assignment of a tenant."""

    id: uuid.UUID
    product_id: str
    name: str | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class CustomerResponse(BaseModel):
    """Portal user."""

    id: uuid.UUID
    tenant_id: str
    email: str
    name: str | None
    role: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    """Invoice metadata; the PDF itself is downloaded separately."""

    id: uuid.UUID
    tenant_id: str
    filename: str
    file_path: str
    file_size: int | None
    invoice_number: str | None
    invoice_date: date | None
    amount: Decimal | None
    description: str | None
    is_paid_by_customer: bool
    customer_paid_at: datetime | None
    is_verified_by_admin: bool
    admin_verified_at: datetime | None
    admin_notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class DocumentResponse(BaseModel):
    id: uuid.UUID
    tenant_product_id: uuid.UUID | None
    filename: str
    file_size: int | None
    mime_type: str | None
    processing_status: str
    total_chunks: int | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ChatLogResponse(BaseModel):
    id: uuid.UUID
    tenant_product_id: uuid.UUID | None
    question: str
    answer: str | None
    language: str | None
    total_cost: float | None
    response_time_ms: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ChatLogPageResponse(BaseModel):
    logs: list[ChatLogResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class WarningsResponse(BaseModel):
    """Success with non-fatal cleanup warnings."""

    success: bool = True
    warnings: list[str] = []
