"""
Global exception handling for the application.
Standardizes error responses using Problem Details for HTTP APIs (RFC 7807).

Client faults (validation, credits) carry a stable machine-readable code and
are never retryable. Server faults (carrier, storage, database) are logged with
full context before being rendered.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class AppError(Exception):
    """Base class for all application exceptions."""

    default_code = "app_error"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
        retryable: bool = False,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.code = code or self.default_code
        self.retryable = retryable
        super().__init__(self.message)

    @property
    def is_client_fault(self) -> bool:
        return self.status_code < 500


class ConfigurationError(AppError):
    """Missing carrier credentials, connection id or storage capability."""

    default_code = "configuration_error"

    def __init__(self, message: str = "Service is not configured", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR, details)


class ValidationError(AppError):
    """Missing recipients, pages or user."""

    default_code = "validation_error"

    def __init__(
        self,
        message: str = "Invalid request",
        details: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details, code=code)


class CreditError(AppError):
    """Not enough available pages."""

    default_code = "insufficient_credits"

    def __init__(self, message: str = "Insufficient credits", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_402_PAYMENT_REQUIRED, details)


class CarrierError(AppError):
    """Non-success response (or transport failure) from a fax carrier."""

    default_code = "carrier_error"

    def __init__(
        self,
        message: str,
        provider: str,
        carrier_status: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.provider = provider
        self.carrier_status = carrier_status
        self.body = body
        super().__init__(
            message,
            status.HTTP_502_BAD_GATEWAY,
            {"provider": provider, "carrier_status": carrier_status, "body": (body or "")[:500]},
            retryable=True,
        )


class StorageError(AppError):
    default_code = "storage_error"

    def __init__(self, message: str = "Object storage failure", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY, details, retryable=True)


class DatabaseError(AppError):
    default_code = "database_error"

    def __init__(self, message: str = "Database failure", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE, details, retryable=True)


class NotFoundError(AppError):
    default_code = "not_found"

    def __init__(self, message: str = "Entity not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_404_NOT_FOUND, details)


class UnauthorizedError(AppError):
    default_code = "unauthorized"

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED, details)


class DuplicateEvent(Exception):
    """Not a failure: the webhook event id was already processed."""

    def __init__(self, event_id: str, result: Optional[Dict[str, Any]] = None):
        self.event_id = event_id
        self.result = result or {}
        super().__init__(f"Webhook event {event_id} already processed")


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all uncaught exceptions globally."""

    if isinstance(exc, AppError):
        if exc.is_client_fault:
            logger.warning(
                "Request rejected",
                code=exc.code,
                message=exc.message,
                path=request.url.path,
            )
        else:
            logger.error(
                "Request failed",
                code=exc.code,
                message=exc.message,
                details=exc.details,
                path=request.url.path,
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "details": exc.details,
                    "path": request.url.path,
                    "retryable": exc.retryable,
                }
            },
        )

    logger.exception("Unexpected error occurred", path=request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "path": request.url.path,
                "retryable": True,
            }
        },
    )
