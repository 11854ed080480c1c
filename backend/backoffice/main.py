"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from backoffice.api import (
    admin_documents,
    admin_invoices,
    admin_tenants,
    admin_tests,
    auth,
    health,
    portal,
    storage,
)
from backoffice.core.config import settings
from backoffice.core.errors import register_exception_handlers
from backoffice.core.limiter import limiter
from backoffice.core.logging import configure_logging
from backoffice.db.session import engine
from backoffice.monitoring import get_metrics_router

configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("app_starting", app=settings.APP_NAME, version=settings.APP_VERSION)
    yield
    await engine.dispose()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]
    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(admin_tenants.router)
    app.include_router(admin_invoices.router)
    app.include_router(admin_documents.router)
    app.include_router(admin_tests.router)
    app.include_router(portal.router)
    app.include_router(storage.router)
    app.include_router(get_metrics_router())

    return app


app = create_app()
