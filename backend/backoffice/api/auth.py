"""Authentication API routes for admins and portal users."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.auth import CurrentAdmin
from backoffice.core.config import settings
from backoffice.core.limiter import limiter
from backoffice.core.security import TokenScope, create_access_token
from backoffice.db.session import get_db
from backoffice.models.tenant import AdminUser
from backoffice.services.directory import authenticate_admin, authenticate_customer

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])
logger = structlog.get_logger()


# =============================================================================
# Pydantic Models
# =============================================================================


class TokenResponse(BaseModel):
    """Token response."""

    access_token: str
    token_type: str = "bearer"


class AdminResponse(BaseModel):
    """Admin response."""

    id: int
    email: str
    full_name: str | None = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_admin(cls, admin: "AdminUser") -> "AdminResponse":
        return cls(id=admin.id, email=admin.email, full_name=admin.full_name)


def _login_failed() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Incorrect email or password",
        headers={"WWW-Authenticate": "Bearer"},
    )


# =============================================================================
# Auth Endpoints
# =============================================================================


@router.post("/admin/login", response_model=TokenResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)  # Strict rate limit to prevent brute force attacks
async def admin_login(
    request: Request,  # Required for rate limiter
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """Login to the admin console.

    Args:
        form_data: OAuth2 form with username (email) and password
        db: Database session

    Returns:
        Access token scoped to the admin console
    """
    log = logger.bind(username=form_data.username, surface="admin")
    log.info("login_attempt")

    admin = await authenticate_admin(db, form_data.username, form_data.password)
    if admin is None or not admin.is_active:
        log.warning("login_failed")
        raise _login_failed()

    log.info("login_success", admin_id=admin.id)
    return TokenResponse(access_token=create_access_token(admin.email, TokenScope.ADMIN))


@router.post("/portal/login", response_model=TokenResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def portal_login(
    request: Request,  # Required for rate limiter
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """Login to the customer portal.

    Inactive accounts get 403 rather than 401 so the portal can tell the
    user their access was revoked.
    """
    log = logger.bind(username=form_data.username, surface="portal")
    log.info("login_attempt")

    customer = await authenticate_customer(db, form_data.username, form_data.password)
    if customer is None:
        log.warning("login_failed")
        raise _login_failed()
    if not customer.is_active:
        log.warning("login_inactive_account", tenant_id=customer.tenant_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")

    log.info("login_success", tenant_id=customer.tenant_id)
    return TokenResponse(access_token=create_access_token(customer.email, TokenScope.CUSTOMER))


@router.get("/admin/me", response_model=AdminResponse)
async def get_current_admin_info(current_admin: CurrentAdmin) -> AdminResponse:
    """Get current admin information.

    Args:
        current_admin: Authenticated admin

    Returns:
        Admin information
    """
    return AdminResponse.from_admin(current_admin)
