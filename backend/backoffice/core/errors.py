"""Domain error taxonomy shared by services and the route layer.

Services raise these; ``register_exception_handlers`` turns them into JSON
responses so no route has to translate them by hand.
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


class DomainError(Exception):
    """Base class for expected, user-facing failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Something went wrong"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(DomainError):
    """Entity does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Forbidden(DomainError):
    """Entity exists but the caller's tenant does not own it, or the account is inactive."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Access denied"


class InvalidState(DomainError):
    """Operation not valid for the entity's current lifecycle state."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Operation not allowed in the current state"


class ValidationFailed(DomainError):
    """Missing or malformed required input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"


class DependencyFailure(DomainError):
    """Underlying store call failed. Never retried."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "An unexpected error occurred"


async def _domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, DomainError):
        return await _unhandled_error_handler(request, exc)
    log = logger.bind(path=request.url.path, method=request.method)
    if isinstance(exc, DependencyFailure):
        log.error("dependency_failure", detail=exc.detail, cause=repr(exc.__cause__))
    else:
        log.info("request_rejected", error=type(exc).__name__, detail=exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": DependencyFailure.default_detail},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach domain and fallback handlers to the application."""
    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)


__all__ = [
    "DependencyFailure",
    "DomainError",
    "Forbidden",
    "InvalidState",
    "NotFound",
    "ValidationFailed",
    "register_exception_handlers",
]
