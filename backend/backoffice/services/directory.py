"""Tenant and customer directory.

Resolves authenticated principals to their tenant and manages tenants,
their product assignments and their portal users.
"""

import re
from dataclasses import dataclass
from typing import Any

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.context import TenantContext
from backoffice.core.errors import Forbidden, NotFound, ValidationFailed
from backoffice.core.security import get_password_hash, verify_password
from backoffice.models.chat_log import ChatLog
from backoffice.models.document import Document
from backoffice.models.invoice import Invoice
from backoffice.models.tenant import AdminUser, CustomerRole, CustomerUser, Tenant, TenantProduct

logger = structlog.get_logger()

DEFAULT_PRODUCTS = ("hr_bot",)
MIN_PASSWORD_LENGTH = 8

_TENANT_ID_RE = re.compile(r"^[a-z0-9-]+$")


@dataclass(frozen=True, slots=True)
class CustomerIdentity:
    """What the directory knows about a portal principal."""

    tenant_id: str
    is_active: bool
    role: CustomerRole


def normalize_tenant_id(raw: str) -> str:
    """Lowercase, trim and hyphenate whitespace: ``" Acme Corp "`` -> ``acme-corp``."""
    return re.sub(r"\s+", "-", raw.strip().lower())


def product_display_name(tenant_name: str, product_id: str) -> str:
    label = "HR Bot" if product_id == "hr_bot" else product_id
    return f"{tenant_name} {label}"


# =============================================================================
# Principal resolution
# =============================================================================


async def resolve_tenant(db: AsyncSession, principal_email: str) -> CustomerIdentity:
    """Look up the tenant of a portal user.

    Raises:
        NotFound: No portal user with this email.
    """
    result = await db.execute(
        select(CustomerUser).where(CustomerUser.email == principal_email.lower())
    )
    customer = result.scalar_one_or_none()
    if customer is None:
        raise NotFound("Customer not found")
    return CustomerIdentity(
        tenant_id=customer.tenant_id,
        is_active=customer.is_active,
        role=CustomerRole(customer.role),
    )


async def require_active_customer(db: AsyncSession, principal_email: str) -> TenantContext:
    """Build the tenant context for a portal request.

    An unknown or inactive account is refused with ``Forbidden``.
    """
    try:
        identity = await resolve_tenant(db, principal_email)
    except NotFound as exc:
        raise Forbidden("No customer account") from exc

    if not identity.is_active:
        logger.warning("inactive_customer_rejected", email=principal_email)
        raise Forbidden("Account is inactive")

    return TenantContext.for_customer(identity.tenant_id, principal_email.lower())


async def require_admin(db: AsyncSession, email: str) -> AdminUser:
    """Return the active admin with this email or refuse with ``Forbidden``."""
    result = await db.execute(select(AdminUser).where(AdminUser.email == email.lower()))
    admin = result.scalar_one_or_none()
    if admin is None or not admin.is_active:
        raise Forbidden("Admin access required")
    return admin


async def authenticate_admin(db: AsyncSession, email: str, password: str) -> AdminUser | None:
    """Admin with matching credentials, or None."""
    result = await db.execute(select(AdminUser).where(AdminUser.email == email.strip().lower()))
    admin = result.scalar_one_or_none()
    if admin is None or not verify_password(password, admin.hashed_password):
        return None
    return admin


async def authenticate_customer(
    db: AsyncSession, email: str, password: str
) -> CustomerUser | None:
    """Portal user with matching credentials, or None. Inactive accounts are returned as-is."""
    result = await db.execute(
        select(CustomerUser).where(CustomerUser.email == email.strip().lower())
    )
    customer = result.scalar_one_or_none()
    if customer is None or not verify_password(password, customer.hashed_password):
        return None
    return customer


# =============================================================================
# Tenants
# =============================================================================


async def get_tenant(db: AsyncSession, tenant_id: str) -> Tenant:
    tenant = await db.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found")
    return tenant


async def _count_by_tenant(db: AsyncSession, model: Any) -> dict[str, int]:
    result = await db.execute(
        select(model.tenant_id, func.count()).select_from(model).group_by(model.tenant_id)
    )
    return {tenant_id: count for tenant_id, count in result.all()}


async def list_tenants_with_stats(db: AsyncSession) -> list[dict[str, Any]]:
    """All tenants ordered by name, each with products and per-tenant counts."""
    result = await db.execute(select(Tenant).order_by(Tenant.name))
    tenants = result.scalars().all()
    if not tenants:
        return []

    users = await _count_by_tenant(db, CustomerUser)
    invoices = await _count_by_tenant(db, Invoice)
    documents = await _count_by_tenant(db, Document)

    return [
        {
            "id": tenant.id,
            "name": tenant.name,
            "is_active": tenant.is_active,
            "created_at": tenant.created_at,
            "products": [
                {
                    "id": str(p.id),
                    "product_id": p.product_id,
                    "name": p.name,
                    "is_active": p.is_active,
                }
                for p in tenant.products
            ],
            "portal_users_count": users.get(tenant.id, 0),
            "invoices_count": invoices.get(tenant.id, 0),
            "documents_count": documents.get(tenant.id, 0),
        }
        for tenant in tenants
    ]


async def get_tenant_detail(db: AsyncSession, tenant_id: str) -> dict[str, Any]:
    """Tenant with products, portal users, invoices and usage counts."""
    tenant = await get_tenant(db, tenant_id)

    users_result = await db.execute(
        select(CustomerUser)
        .where(CustomerUser.tenant_id == tenant_id)
        .order_by(CustomerUser.created_at.desc())
    )
    users = users_result.scalars().all()

    invoices_result = await db.execute(
        select(Invoice)
        .where(Invoice.tenant_id == tenant_id)
        .order_by(Invoice.invoice_date.desc(), Invoice.created_at.desc())
    )
    invoices = invoices_result.scalars().all()

    documents_count = await db.scalar(
        select(func.count()).select_from(Document).where(Document.tenant_id == tenant_id)
    )
    chat_logs_count = await db.scalar(
        select(func.count()).select_from(ChatLog).where(ChatLog.tenant_id == tenant_id)
    )

    return {
        "tenant": tenant,
        "products": list(tenant.products),
        "users": list(users),
        "invoices": list(invoices),
        "stats": {
            "documents_count": documents_count or 0,
            "chat_logs_count": chat_logs_count or 0,
            "users_count": len(users),
            "invoices_count": len(invoices),
        },
    }


async def create_tenant(
    db: AsyncSession,
    raw_id: str,
    name: str,
    products: list[str] | None = None,
) -> Tenant:
    """Create a tenant and assign its products (``hr_bot`` when none given).

    Raises:
        ValidationFailed: Empty name, malformed slug or duplicate id.
    """
    tenant_id = normalize_tenant_id(raw_id)
    name = name.strip()
    log = logger.bind(tenant_id=tenant_id)

    if not tenant_id or not _TENANT_ID_RE.match(tenant_id):
        raise ValidationFailed("ID may only contain letters, digits and hyphens")
    if not name:
        raise ValidationFailed("Name is required")
    if await db.get(Tenant, tenant_id) is not None:
        raise ValidationFailed("A tenant with this ID already exists")

    tenant = Tenant(id=tenant_id, name=name, is_active=True)
    db.add(tenant)
    for product_id in products or DEFAULT_PRODUCTS:
        db.add(
            TenantProduct(
                tenant_id=tenant_id,
                product_id=product_id,
                name=product_display_name(name, product_id),
                is_active=True,
            )
        )
    await db.commit()
    await db.refresh(tenant)

    log.info("tenant_created", products=list(products or DEFAULT_PRODUCTS))
    return tenant


async def update_tenant(
    db: AsyncSession,
    tenant_id: str,
    name: str | None = None,
    is_active: bool | None = None,
    products: list[str] | None = None,
) -> Tenant:
    """Update basics and sync product assignments.

    Products missing from ``products`` are deactivated rather than deleted so
    their documents and logs survive.
    """
    tenant = await get_tenant(db, tenant_id)
    log = logger.bind(tenant_id=tenant_id)

    if name is not None:
        if not name.strip():
            raise ValidationFailed("Name is required")
        tenant.name = name.strip()
    if is_active is not None:
        tenant.is_active = is_active

    if products is not None:
        current = {p.product_id: p for p in tenant.products}
        for product_id in products:
            if product_id in current:
                current[product_id].is_active = True
            else:
                db.add(
                    TenantProduct(
                        tenant_id=tenant_id,
                        product_id=product_id,
                        name=product_display_name(tenant.name, product_id),
                        is_active=True,
                    )
                )
        for product_id, product in current.items():
            if product_id not in products:
                product.is_active = False

    await db.commit()
    await db.refresh(tenant)
    log.info("tenant_updated")
    return tenant


async def delete_tenant(db: AsyncSession, tenant_id: str) -> str:
    """Delete a tenant and, by cascade, everything it owns. Returns its name."""
    tenant = await get_tenant(db, tenant_id)
    name = tenant.name
    await db.delete(tenant)
    await db.commit()
    logger.info("tenant_deleted", tenant_id=tenant_id)
    return name


# =============================================================================
# Portal users
# =============================================================================


async def list_customers(db: AsyncSession, tenant_id: str | None = None) -> list[CustomerUser]:
    query = select(CustomerUser).order_by(CustomerUser.created_at.desc())
    if tenant_id:
        query = query.where(CustomerUser.tenant_id == tenant_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_customer(db: AsyncSession, customer_id: Any) -> CustomerUser:
    customer = await db.get(CustomerUser, customer_id)
    if customer is None:
        raise NotFound("Customer not found")
    return customer


async def get_customer_by_email(db: AsyncSession, email: str) -> CustomerUser:
    result = await db.execute(select(CustomerUser).where(CustomerUser.email == email.lower()))
    customer = result.scalar_one_or_none()
    if customer is None:
        raise NotFound("Customer not found")
    return customer


async def create_customer(
    db: AsyncSession,
    tenant_id: str,
    email: str,
    password: str,
    name: str | None = None,
    role: str = CustomerRole.USER.value,
) -> CustomerUser:
    """Create a portal login for an existing tenant.

    Raises:
        ValidationFailed: Bad email, short password, unknown role or tenant,
            or email already taken.
    """
    email = email.strip().lower()
    log = logger.bind(tenant_id=tenant_id, email=email)

    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationFailed("Invalid email address") from exc
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    try:
        role = CustomerRole(role).value
    except ValueError as exc:
        raise ValidationFailed('Role must be "admin" or "user"') from exc

    if await db.get(Tenant, tenant_id) is None:
        raise ValidationFailed("Tenant does not exist")

    existing = await db.execute(select(CustomerUser.id).where(CustomerUser.email == email))
    if existing.scalar_one_or_none() is not None:
        raise ValidationFailed("Email already registered")

    customer = CustomerUser(
        tenant_id=tenant_id,
        email=email,
        hashed_password=get_password_hash(password),
        name=name.strip() if name else None,
        role=role,
        is_active=True,
    )
    db.add(customer)
    try:
        await db.commit()
    except IntegrityError as exc:
        # Lost a race with a concurrent signup for the same email
        await db.rollback()
        raise ValidationFailed("Email already registered") from exc
    await db.refresh(customer)

    log.info("customer_created", customer_id=str(customer.id))
    return customer


async def update_customer(
    db: AsyncSession,
    customer_id: Any,
    name: str | None = None,
    role: str | None = None,
    is_active: bool | None = None,
) -> CustomerUser:
    customer = await get_customer(db, customer_id)
    if role is not None:
        try:
            customer.role = CustomerRole(role).value
        except ValueError as exc:
            raise ValidationFailed('Role must be "admin" or "user"') from exc
    if name is not None:
        customer.name = name.strip() or None
    if is_active is not None:
        customer.is_active = is_active

    await db.commit()
    await db.refresh(customer)
    logger.info("customer_updated", customer_id=str(customer_id))
    return customer


async def delete_customer(db: AsyncSession, customer_id: Any) -> None:
    customer = await get_customer(db, customer_id)
    await db.delete(customer)
    await db.commit()
    logger.info("customer_deleted", customer_id=str(customer_id))
