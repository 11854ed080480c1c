"""Admin API routes for tenants and their portal users."""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.common import parse_uuid
from backoffice.api.schemas import CustomerResponse, InvoiceResponse, ProductResponse
from backoffice.core.auth import CurrentAdmin
from backoffice.db.session import get_db
from backoffice.models.tenant import CustomerRole, Tenant
from backoffice.services import directory

router = APIRouter(prefix="/api/v1/admin", tags=["admin-tenants"])
logger = structlog.get_logger()


# =============================================================================
# Pydantic Schemas
# =============================================================================


class TenantCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    products: list[str] | None = None


class TenantUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    is_active: bool | None = None
    products: list[str] | None = None


class TenantProductSummary(BaseModel):
    id: str
    product_id: str
    name: str | None
    is_active: bool


class TenantListItem(BaseModel):
    id: str
    name: str
    is_active: bool
    created_at: datetime
    products: list[TenantProductSummary]
    portal_users_count: int
    invoices_count: int
    documents_count: int


class TenantResponse(BaseModel):
    id: str
    name: str
    is_active: bool
    created_at: datetime
    products: list[ProductResponse]

    model_config = {"from_attributes": True}


class TenantStats(BaseModel):
    documents_count: int
    chat_logs_count: int
    users_count: int
    invoices_count: int


class TenantDetailResponse(BaseModel):
    tenant: TenantResponse
    users: list[CustomerResponse]
    invoices: list[InvoiceResponse]
    stats: TenantStats


class CustomerCreate(BaseModel):
    tenant_id: str
    email: str
    password: str
    name: str | None = None
    role: str = CustomerRole.USER.value


class CustomerUpdate(BaseModel):
    name: str | None = None
    role: str | None = None
    is_active: bool | None = None


def _tenant_response(tenant: Tenant) -> TenantResponse:
    return TenantResponse.model_validate(tenant)


# =============================================================================
# Tenant Endpoints
# =============================================================================


@router.get("/tenants", response_model=list[TenantListItem])
async def list_tenants(
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> list[TenantListItem]:
    """All tenants with product assignments and usage counts."""
    rows = await directory.list_tenants_with_stats(db)
    return [TenantListItem(**row) for row in rows]


@router.post("/tenants", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    request: TenantCreate,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> TenantResponse:
    """Create a tenant; the id is normalized to a lowercase slug."""
    tenant = await directory.create_tenant(db, request.id, request.name, request.products)
    logger.info("admin_tenant_created", tenant_id=tenant.id, admin=admin.email)
    return _tenant_response(tenant)


@router.get("/tenants/{tenant_id}", response_model=TenantDetailResponse)
async def get_tenant(
    tenant_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> TenantDetailResponse:
    detail = await directory.get_tenant_detail(db, tenant_id)
    return TenantDetailResponse(
        tenant=_tenant_response(detail["tenant"]),
        users=[CustomerResponse.model_validate(u) for u in detail["users"]],
        invoices=[InvoiceResponse.model_validate(i) for i in detail["invoices"]],
        stats=TenantStats(**detail["stats"]),
    )


@router.patch("/tenants/{tenant_id}", response_model=TenantResponse)
async def update_tenant(
    tenant_id: str,
    request: TenantUpdate,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> TenantResponse:
    """Rename, (de)activate, or change the product assignments of a tenant."""
    tenant = await directory.update_tenant(
        db,
        tenant_id,
        name=request.name,
        is_active=request.is_active,
        products=request.products,
    )
    return _tenant_response(tenant)


@router.delete("/tenants/{tenant_id}")
async def delete_tenant(
    tenant_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> dict[str, str | bool]:
    """Delete a tenant and everything it owns."""
    name = await directory.delete_tenant(db, tenant_id)
    logger.info("admin_tenant_deleted", tenant_id=tenant_id, admin=admin.email)
    return {"success": True, "message": f'Tenant "{name}" deleted'}


# =============================================================================
# Portal User Endpoints
# =============================================================================


@router.get("/customers", response_model=list[CustomerResponse])
async def list_customers(
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
    tenant_id: str | None = Query(default=None),
) -> list[CustomerResponse]:
    customers = await directory.list_customers(db, tenant_id)
    return [CustomerResponse.model_validate(c) for c in customers]


@router.post("/customers", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    request: CustomerCreate,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> CustomerResponse:
    """Create a portal login for a tenant."""
    customer = await directory.create_customer(
        db,
        tenant_id=request.tenant_id,
        email=request.email,
        password=request.password,
        name=request.name,
        role=request.role,
    )
    return CustomerResponse.model_validate(customer)


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> CustomerResponse:
    customer = await directory.get_customer(db, parse_uuid(customer_id, "customer ID"))
    return CustomerResponse.model_validate(customer)


@router.patch("/customers/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: str,
    request: CustomerUpdate,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> CustomerResponse:
    customer = await directory.update_customer(
        db,
        parse_uuid(customer_id, "customer ID"),
        name=request.name,
        role=request.role,
        is_active=request.is_active,
    )
    return CustomerResponse.model_validate(customer)


@router.delete("/customers/{customer_id}")
async def delete_customer(
    customer_id: str,
    admin: CurrentAdmin,
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    await directory.delete_customer(db, parse_uuid(customer_id, "customer ID"))
    return {"success": True}
