"""Custom exception handlers for consistent error responses.

Every error leaving the service has the same envelope, so the browser
can surface it inline next to the wizard instead of in a blocking alert.
"""

import logging
import traceback
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AdmissionsException(Exception):
    """Base exception for admissions application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Union[dict, list, None] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class WizardNotFoundError(AdmissionsException):
    """The wizard session expired or never existed."""

    def __init__(self, wizard_id: str):
        super().__init__(
            message=f"Wizard session not found: {wizard_id}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="WIZARD_NOT_FOUND",
        )


class WizardBusyError(AdmissionsException):
    """A draft save or submission is already in flight."""

    def __init__(self, message: str = "Please wait for the current operation to finish"):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="WIZARD_BUSY",
        )


class UploadRejectedError(AdmissionsException):
    """A file failed client-side checks (type or size)."""

    def __init__(self, field: str, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="UPLOAD_REJECTED",
            details={"field": field},
        )


class FieldLockedError(AdmissionsException):
    """A field fixed when the wizard started was edited."""

    def __init__(self, field: str):
        super().__init__(
            message=f"{field} cannot be changed on this form",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="FIELD_LOCKED",
            details={"field": field},
        )


class DraftSaveError(AdmissionsException):
    """A draft could not be written (storage down, unserializable value)."""

    def __init__(self, message: str = "Failed to save draft"):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="DRAFT_SAVE_FAILED",
        )


class GatewayError(AdmissionsException):
    """The records backend failed or answered with success=false."""

    def __init__(self, message: str, upstream_status: int | None = None):
        self.upstream_status = upstream_status
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="BACKEND_ERROR",
        )


class DocumentUploadError(GatewayError):
    """One document upload failed; the whole submission is abandoned."""

    def __init__(self, field: str, message: str, upstream_status: int | None = None):
        self.field = field
        super().__init__(
            message=f"Failed to upload {field}: {message}",
            upstream_status=upstream_status,
        )


class TrackingError(AdmissionsException):
    """Tracking lookup or OTP verification was refused."""

    def __init__(self, message: str, error_code: str = "TRACKING_ERROR"):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
        )


class OTPCooldownError(AdmissionsException):
    """Raised when an OTP is requested too soon after the previous one."""

    def __init__(self, remaining: int):
        self.remaining = remaining
        super().__init__(
            message=f"Wait {remaining}s before requesting another code",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            error_code="OTP_COOLDOWN",
            details={"retry_after": remaining},
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response.

    Format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }
    """
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
    )


async def admissions_exception_handler(
    request: Request,
    exc: AdmissionsException,
) -> JSONResponse:
    """Handle custom admissions exceptions."""
    logger.warning(
        f"Admissions exception: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    logger.warning(
        f"Validation error on {request.url.path}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "errors": exc.errors(),
        },
    )

    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    """Handle database operational errors (connection issues, etc.)."""
    logger.error(
        f"Database operational error on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="Draft storage temporarily unavailable. Please try again.",
        error_code="DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error(
        f"Unhandled exception on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
        exc_info=True,
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(AdmissionsException, admissions_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
