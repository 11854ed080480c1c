"""Authentication dependencies for the admin console and the customer portal."""

from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.context import TenantContext
from backoffice.core.security import InvalidToken, TokenScope, decode_access_token
from backoffice.db.session import get_db
from backoffice.models.tenant import AdminUser
from backoffice.services.directory import require_active_customer, require_admin

security = HTTPBearer()
logger = structlog.get_logger()


def _subject(credentials: HTTPAuthorizationCredentials, scope: TokenScope) -> str:
    try:
        return decode_access_token(credentials.credentials, scope)
    except InvalidToken as exc:
        logger.info("token_rejected", scope=scope.value, reason=str(exc))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


async def get_current_admin(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AdminUser:
    """Active back-office operator behind an admin token."""
    email = _subject(credentials, TokenScope.ADMIN)
    return await require_admin(db, email)


async def get_customer_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TenantContext:
    """Tenant context of the active portal user behind a customer token."""
    email = _subject(credentials, TokenScope.CUSTOMER)
    return await require_active_customer(db, email)


# Type aliases for dependency injection
CurrentAdmin = Annotated[AdminUser, Depends(get_current_admin)]
CustomerContext = Annotated[TenantContext, Depends(get_customer_context)]


def admin_context(tenant_id: str, admin: AdminUser) -> TenantContext:
    """Context for an admin acting on the tenant named in the request path."""
    return TenantContext.for_admin(tenant_id, admin.email)
